"""Batch partitioning of the candidate pool."""

from __future__ import annotations

import math

from mundus.schemas.digest import Batch, CandidateDocument

DEFAULT_BATCH_SIZE = 25


def batch_count(pool_size: int, capacity: int = DEFAULT_BATCH_SIZE) -> int:
    if capacity < 1:
        raise ValueError("Batch capacity must be at least 1")
    return math.ceil(pool_size / capacity) if pool_size > 0 else 0


def partition_documents(
    documents: list[CandidateDocument],
    capacity: int = DEFAULT_BATCH_SIZE,
) -> list[Batch]:
    """Split documents into contiguous, order-preserving batches."""
    total = batch_count(len(documents), capacity)
    return [
        Batch(index=number, total=total, documents=list(documents[start:start + capacity]))
        for number, start in enumerate(range(0, len(documents), capacity), 1)
    ]
