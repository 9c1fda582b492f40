"""Vector math primitives.

Pure, stateless helpers over dense float vectors. Inputs may be lists or
numpy arrays and are never modified; results are plain Python floats and
lists. Numeric edge cases (length mismatch, zero vectors) resolve to
sentinel values instead of raising: 0.0 for similarities, None for
averages.
"""

import math
from collections.abc import Sequence

import numpy as np
from numpy.typing import NDArray

Vector = list[float]
VectorLike = Sequence[float] | NDArray[np.floating]


def _as_array(v: VectorLike) -> NDArray[np.float64]:
    return np.asarray(v, dtype=np.float64).reshape(-1)


def dot(a: VectorLike, b: VectorLike) -> float:
    """Dot product of two same-length vectors.

    Returns:
        dot(a, b), or 0.0 if the lengths differ or are zero.
    """
    x, y = _as_array(a), _as_array(b)
    if x.size != y.size or x.size == 0:
        return 0.0
    return float(np.dot(x, y))


def sum_of_squares(v: VectorLike) -> float:
    """Squared L2 norm of a vector."""
    x = _as_array(v)
    if x.size == 0:
        return 0.0
    return float(np.dot(x, x))


def l2_norm(v: VectorLike) -> float:
    """Euclidean length of a vector."""
    s = sum_of_squares(v)
    return math.sqrt(s) if s > 0 else 0.0


def is_zero_vector(v: VectorLike) -> bool:
    """True when the vector is empty or all of its values are zero."""
    x = _as_array(v)
    return x.size == 0 or not np.any(x)


def normalize(v: VectorLike) -> Vector:
    """Return an L2-normalized copy of ``v``.

    A zero vector cannot be normalized and is returned unchanged.
    """
    x = _as_array(v)
    s = sum_of_squares(x)
    if s == 0:
        return x.tolist()
    return (x / math.sqrt(s)).tolist()


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """Cosine similarity clamped to [-1, 1].

    Returns 0.0 if the lengths differ or either vector is zero.
    """
    x, y = _as_array(a), _as_array(b)
    if x.size != y.size or x.size == 0:
        return 0.0

    sum_sq_a = float(np.dot(x, x))
    sum_sq_b = float(np.dot(y, y))
    if sum_sq_a <= 0 or sum_sq_b <= 0:
        return 0.0

    sim = float(np.dot(x, y)) / (math.sqrt(sum_sq_a) * math.sqrt(sum_sq_b))
    return min(1.0, max(-1.0, sim))


def cosine_similarity_normalized(a: VectorLike, b: VectorLike) -> float:
    """Cosine similarity of vectors that are already L2-normalized."""
    return min(1.0, max(-1.0, dot(a, b)))


def average(vectors: Sequence[VectorLike]) -> Vector | None:
    """Element-wise mean of equal-length vectors.

    Returns:
        The mean vector, or None if the input is empty, zero-dimensional
        or has inconsistent lengths.
    """
    if len(vectors) == 0:
        return None

    arrays = [_as_array(v) for v in vectors]
    dim = arrays[0].size
    if dim == 0 or any(a.size != dim for a in arrays):
        return None

    return np.mean(np.vstack(arrays), axis=0).tolist()


def batch_cosine_similarity(
    query: VectorLike,
    candidates: Sequence[VectorLike],
) -> list[float]:
    """Cosine similarity of one query against many candidates.

    Results are aligned with ``candidates``. Candidates with a different
    length or zero norm (and every candidate, for a zero query) get 0.0.
    """
    q = _as_array(query)
    query_norm = l2_norm(q)
    if query_norm == 0.0:
        return [0.0] * len(candidates)

    results: list[float] = []
    for candidate in candidates:
        c = _as_array(candidate)
        if c.size != q.size:
            results.append(0.0)
            continue
        cand_norm = l2_norm(c)
        if cand_norm == 0.0:
            results.append(0.0)
            continue
        sim = float(np.dot(q, c)) / (query_norm * cand_norm)
        results.append(min(1.0, max(-1.0, sim)))
    return results


def fit_to_dimension(v: VectorLike, dimension: int) -> Vector:
    """Truncate or zero-pad a vector to exactly ``dimension`` values."""
    x = _as_array(v)
    if x.size >= dimension:
        return x[:dimension].tolist()
    return np.concatenate([x, np.zeros(dimension - x.size)]).tolist()


def similarity_matrix(vectors: Sequence[VectorLike]) -> NDArray[np.float64]:
    """Pairwise cosine similarities of equal-length vectors.

    Rows belonging to zero vectors compare as 0.0 against everything,
    including themselves.

    Returns:
        Symmetric ``(n, n)`` array clamped to [-1, 1].
    """
    if len(vectors) == 0:
        return np.zeros((0, 0))

    matrix = np.vstack([_as_array(v) for v in vectors])
    norms = np.linalg.norm(matrix, axis=1)
    safe = np.where(norms > 0, norms, 1.0)
    unit = matrix / safe[:, np.newaxis]
    unit[norms == 0] = 0.0
    return np.clip(unit @ unit.T, -1.0, 1.0)
