"""
Similarity matrix keys and builders.

A similarity matrix is a plain ``dict`` from a pair key to a score in [0, 1].
Keys are canonical: the two ids are sorted before joining, so ``(a, b)`` and
``(b, a)`` resolve to the same entry. A missing pair means similarity 0.
"""

import math
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import numpy as np
import structlog

logger = structlog.get_logger()

KEY_SEPARATOR = "|"

SimilarityMatrix = Dict[str, float]


def pair_key(a: str, b: str) -> str:
    """Canonical key for the unordered pair ``(a, b)``."""
    first, second = sorted((str(a), str(b)))
    return f"{first}{KEY_SEPARATOR}{second}"


def split_pair_key(key: str) -> Optional[Tuple[str, str]]:
    """
    Decompose a pair key into its two ids.

    Returns:
        The two ids, or None when the key is malformed (not exactly two
        non-empty parts).
    """
    if not isinstance(key, str):
        return None
    parts = key.split(KEY_SEPARATOR)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1]


def extract_node_ids(similarities: Mapping[str, float]) -> List[str]:
    """Distinct node ids in order of first appearance in the matrix keys."""
    seen: Dict[str, None] = {}
    skipped = 0
    for key in similarities:
        ids = split_pair_key(key)
        if ids is None:
            skipped += 1
            continue
        seen.setdefault(ids[0])
        seen.setdefault(ids[1])
    if skipped:
        logger.debug("Skipped malformed similarity keys", count=skipped)
    return list(seen)


def get_similarity(similarities: Mapping[str, float], a: str, b: str) -> Optional[float]:
    """
    Look up the similarity of ``a`` and ``b``.

    Tries the canonical key first, then the raw ``a|b`` order for matrices
    built without canonicalization.
    """
    value = similarities.get(pair_key(a, b))
    if value is None:
        value = similarities.get(f"{a}{KEY_SEPARATOR}{b}")
    return value


def similarity_array(similarities: Mapping[str, float], node_ids: Sequence[str]) -> np.ndarray:
    """
    Dense symmetric ``(n, n)`` similarity array for ``node_ids``.

    Pairs missing from the matrix, malformed keys and ids outside
    ``node_ids`` are left at 0. The diagonal is 0.
    """
    index = {node_id: i for i, node_id in enumerate(node_ids)}
    n = len(node_ids)
    dense = np.zeros((n, n), dtype=float)
    for key, value in similarities.items():
        ids = split_pair_key(key)
        if ids is None or value is None:
            continue
        i, j = index.get(ids[0]), index.get(ids[1])
        if i is None or j is None or i == j:
            continue
        dense[i, j] = dense[j, i] = float(value)
    return dense


def cosine_similarity(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    """
    Cosine similarity rescaled from [-1, 1] to [0, 1].

    Vectors of different length are compared over the shorter length;
    non-finite components are skipped; zero vectors give 0.
    """
    length = min(len(vector_a), len(vector_b))
    if length == 0:
        return 0.0
    a = np.asarray(vector_a[:length], dtype=float)
    b = np.asarray(vector_b[:length], dtype=float)
    finite = np.isfinite(a) & np.isfinite(b)
    a, b = a[finite], b[finite]
    norm_a, norm_b = np.linalg.norm(a), np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    cosine = float(np.dot(a, b) / (norm_a * norm_b))
    return max(0.0, (cosine + 1) / 2)


def jaccard_similarity(set_a: Iterable[str], set_b: Iterable[str]) -> float:
    """Intersection over union of two tag sets; 0 if either is empty."""
    a: Set[str] = {str(v).strip().lower() for v in set_a}
    b: Set[str] = {str(v).strip().lower() for v in set_b}
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def spatial_proximity(position_a, position_b, scale: float = 100.0) -> float:
    """Exponential falloff with distance: ``exp(-distance / scale)``."""
    from .geometry import distance

    return math.exp(-distance(position_a, position_b) / scale)


def build_similarity_matrix(
    vectors: Mapping[str, Sequence[float]], min_similarity: float = 0.0
) -> SimilarityMatrix:
    """
    Build a canonical similarity matrix from per-node embedding vectors.

    Args:
        vectors: Node id to embedding vector
        min_similarity: Pairs scoring below this are omitted (treated as 0)

    Returns:
        Similarity matrix keyed by ``pair_key``
    """
    node_ids = list(vectors)
    matrix: SimilarityMatrix = {}
    if len(node_ids) < 2:
        return matrix

    lengths = {len(v) for v in vectors.values()}
    data = np.asarray([vectors[i] for i in node_ids], dtype=float) if len(lengths) == 1 else None
    if data is not None and np.all(np.isfinite(data)):
        # Equal-length finite vectors: one matrix product for all pairs
        norms = np.linalg.norm(data, axis=1)
        safe = np.where(norms == 0, 1.0, norms)
        unit = data / safe[:, None]
        scores = np.clip((unit @ unit.T + 1) / 2, 0.0, 1.0)
        zero = norms == 0
        scores[zero, :] = 0.0
        scores[:, zero] = 0.0
        for i in range(len(node_ids)):
            for j in range(i + 1, len(node_ids)):
                score = float(scores[i, j])
                if score >= min_similarity:
                    matrix[pair_key(node_ids[i], node_ids[j])] = score
    else:
        for i in range(len(node_ids)):
            for j in range(i + 1, len(node_ids)):
                score = cosine_similarity(vectors[node_ids[i]], vectors[node_ids[j]])
                if score >= min_similarity:
                    matrix[pair_key(node_ids[i], node_ids[j])] = score

    logger.info("Similarity matrix built", nodes=len(node_ids), pairs=len(matrix))
    return matrix
