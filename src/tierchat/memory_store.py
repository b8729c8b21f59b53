"""Append-only vector memory with exact cosine-similarity search.

Search is a full O(n * d) scan, which is the intended scale for a local,
per-process memory. There is no approximate index and no eviction.
"""

import threading
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np


@dataclass(frozen=True, eq=False)
class MemoryEntry:
    """Immutable (text, embedding) pair.

    Attributes:
        text: Source text that was embedded.
        embedding: Read-only float32 vector.
    """

    text: str
    embedding: np.ndarray

    def __post_init__(self):
        """Store a private read-only float32 copy of the embedding."""
        vector = np.array(self.embedding, dtype=np.float32).reshape(-1)
        vector.setflags(write=False)
        object.__setattr__(self, "embedding", vector)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity that is defined for every input.

    Returns 0.0 for vectors of different lengths, empty vectors, zero-norm
    vectors, and non-finite results.

    Args:
        a: First vector.
        b: Second vector.

    Returns:
        Similarity in [-1, 1], or 0.0 in the cases above.
    """
    a = np.asarray(a, dtype=np.float32).reshape(-1)
    b = np.asarray(b, dtype=np.float32).reshape(-1)
    if a.shape != b.shape or a.size == 0:
        return 0.0

    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    score = float(np.dot(a, b)) / (norm_a * norm_b)
    return score if np.isfinite(score) else 0.0


class VectorMemoryStore:
    """Thread-safe, append-only collection of memory entries.

    The lock covers only appends and snapshots; scoring runs on a snapshot
    outside the lock.

    Example:
        >>> store = VectorMemoryStore()
        >>> store.add("the sky is blue", embedder.embed("the sky is blue"))
        >>> store.search(embedder.embed("what colour is the sky?"), k=2)
        ['the sky is blue']
    """

    def __init__(self):
        self._entries: list[MemoryEntry] = []
        self._lock = threading.Lock()

    def add(self, text: str, embedding: Sequence[float]) -> None:
        """Append an entry.

        Args:
            text: Source text.
            embedding: Its embedding vector.
        """
        entry = MemoryEntry(text, embedding)
        with self._lock:
            self._entries.append(entry)

    def search(self, query_embedding: Sequence[float], k: int) -> list[str]:
        """Return the texts of the k most similar entries.

        Args:
            query_embedding: Query vector.
            k: Maximum number of results.

        Returns:
            Texts in descending similarity; ties keep insertion order.
        """
        return [text for text, _ in self.search_with_scores(query_embedding, k)]

    def search_with_scores(
        self, query_embedding: Sequence[float], k: int
    ) -> list[tuple[str, float]]:
        """Return (text, similarity) for the k most similar entries.

        Args:
            query_embedding: Query vector.
            k: Maximum number of results.

        Returns:
            (text, similarity) tuples, sorted by similarity descending.
        """
        if k <= 0:
            return []

        entries = self.entries()
        if not entries:
            return []

        query = np.asarray(query_embedding, dtype=np.float32).reshape(-1)
        scored = [(entry.text, cosine_similarity(entry.embedding, query)) for entry in entries]

        # list.sort is stable, so equal scores keep insertion order
        scored.sort(key=lambda item: -item[1])
        return scored[:k]

    def entries(self) -> list[MemoryEntry]:
        """Snapshot of all entries in insertion order."""
        with self._lock:
            return list(self._entries)

    def to_records(self) -> list[dict]:
        """Serialize entries for durable storage."""
        return [
            {"text": entry.text, "embedding": entry.embedding.tolist()}
            for entry in self.entries()
        ]

    def extend_records(self, records: Iterable[dict]) -> int:
        """Append entries from serialized records.

        Args:
            records: Dicts with 'text' and 'embedding' keys.

        Returns:
            Number of entries appended.
        """
        new_entries = [MemoryEntry(r["text"], r["embedding"]) for r in records]
        with self._lock:
            self._entries.extend(new_entries)
        return len(new_entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
