"""Durable storage for sessions and memory using DuckDB.

The archive stores the serialized records produced by SessionRegistry and
VectorMemoryStore. It is never touched by a chat turn; callers checkpoint
with ``save`` and reload with ``restore``.
"""

import logging
from pathlib import Path
from typing import Union

import duckdb

from .memory_store import VectorMemoryStore
from .session import SessionRegistry

logger = logging.getLogger(__name__)


class ChatArchive:
    """DuckDB-backed snapshot store for chat state."""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        """Open (or create) the archive.

        Args:
            db_path: Path to DuckDB database file, or ":memory:" for in-memory
        """
        self.db_path = str(db_path)
        self.conn = duckdb.connect(self.db_path)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they do not exist."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                session_id VARCHAR PRIMARY KEY,
                max_history INTEGER NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                session_id VARCHAR NOT NULL,
                position INTEGER NOT NULL,
                role VARCHAR NOT NULL,
                content TEXT NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS memories (
                position INTEGER PRIMARY KEY,
                text TEXT NOT NULL,
                embedding FLOAT[]
            )
        """)

    def save(self, sessions: SessionRegistry, memory: VectorMemoryStore) -> None:
        """Replace the archived state with a snapshot of the given state.

        Args:
            sessions: Registry to snapshot.
            memory: Memory store to snapshot.
        """
        session_records = sessions.to_records()
        memory_records = memory.to_records()

        self.conn.execute("BEGIN TRANSACTION")
        try:
            self.conn.execute("DELETE FROM messages")
            self.conn.execute("DELETE FROM sessions")
            self.conn.execute("DELETE FROM memories")

            if session_records:
                self.conn.executemany(
                    "INSERT INTO sessions (session_id, max_history) VALUES (?, ?)",
                    [[r["session_id"], r["max_history"]] for r in session_records],
                )
            message_rows = [
                [r["session_id"], i, m["role"], m["content"]]
                for r in session_records
                for i, m in enumerate(r["messages"])
            ]
            if message_rows:
                self.conn.executemany(
                    "INSERT INTO messages (session_id, position, role, content) VALUES (?, ?, ?, ?)",
                    message_rows,
                )
            if memory_records:
                self.conn.executemany(
                    "INSERT INTO memories (position, text, embedding) VALUES (?, ?, ?)",
                    [[i, r["text"], r["embedding"]] for i, r in enumerate(memory_records)],
                )
            self.conn.execute("COMMIT")
        except duckdb.Error:
            self.conn.execute("ROLLBACK")
            raise

        logger.info(
            "Archived %d sessions and %d memories to %s",
            len(session_records),
            len(memory_records),
            self.db_path,
        )

    def restore(self, sessions: SessionRegistry, memory: VectorMemoryStore) -> None:
        """Load archived state into a registry and memory store.

        Sessions with the same id are replaced; memories are appended after
        any entries the store already holds.

        Args:
            sessions: Registry to restore into.
            memory: Memory store to restore into.
        """
        session_records = {
            session_id: {"session_id": session_id, "max_history": max_history, "messages": []}
            for session_id, max_history in self.conn.execute(
                "SELECT session_id, max_history FROM sessions ORDER BY session_id"
            ).fetchall()
        }
        for session_id, role, content in self.conn.execute(
            "SELECT session_id, role, content FROM messages ORDER BY session_id, position"
        ).fetchall():
            session_records[session_id]["messages"].append({"role": role, "content": content})

        memory_records = [
            {"text": text, "embedding": embedding or []}
            for text, embedding in self.conn.execute(
                "SELECT text, embedding FROM memories ORDER BY position"
            ).fetchall()
        ]

        restored_sessions = sessions.restore(session_records.values())
        restored_memories = memory.extend_records(memory_records)
        logger.info(
            "Restored %d sessions and %d memories from %s",
            restored_sessions,
            restored_memories,
            self.db_path,
        )

    def count(self) -> dict[str, int]:
        """Row counts per table."""
        return {
            table: self.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            for table in ("sessions", "messages", "memories")
        }

    def export_parquet(self, path: Path) -> None:
        """Export the archive to Parquet format.

        Args:
            path: Directory to export to
        """
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        self.conn.execute(f"EXPORT DATABASE '{path}' (FORMAT PARQUET)")

    def close(self):
        """Close database connection."""
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
