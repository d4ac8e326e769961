"""Cosine similarity and ranking of chunk search matches."""

from typing import Any

import numpy as np


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity between two vectors; 0.0 if either is all zeros."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def rank_matches(
    query_embedding: list[float],
    rows: list[dict[str, Any]],
    threshold: float,
    limit: int,
) -> list[dict[str, Any]]:
    """
    Filter and order chunk rows for a search result.

    Rows carrying a ``similarity`` (computed by the database) keep it; rows
    carrying only an ``embedding`` are scored here.

    Args:
        query_embedding: Embedding of the search query
        rows: Chunk rows, each with ``similarity`` or ``embedding``
        threshold: Minimum similarity to keep
        limit: Maximum rows returned

    Returns:
        Rows with ``similarity`` set, descending by similarity, ties broken by
        ``created_at`` with the most recent first
    """
    scored = []
    for row in rows:
        similarity = row.get("similarity")
        if similarity is None:
            embedding = row.get("embedding")
            if not embedding:
                continue
            similarity = cosine_similarity(query_embedding, embedding)
        if similarity < threshold:
            continue
        scored.append({**row, "similarity": float(similarity)})

    # Two stable sorts: recency first, then similarity
    scored.sort(key=lambda r: r.get("created_at") or "", reverse=True)
    scored.sort(key=lambda r: r["similarity"], reverse=True)
    return scored[: max(0, limit)]
