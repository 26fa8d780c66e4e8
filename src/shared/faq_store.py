from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Optional

from shared.schema import FAQRecord

_EXACT_SQL = """
    SELECT question, answer FROM faqs
    WHERE casefold(question) = ?
    ORDER BY rowid
    LIMIT 1
"""

# Shortest matching question wins, then insertion order.
_CONTAINS_SQL = """
    SELECT question, answer FROM faqs
    WHERE instr(casefold(question), ?) > 0
    ORDER BY length(question), rowid
    LIMIT 1
"""


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if isinstance(value, str) else value


class FaqStore:
    """Read-only lookup over the ``faqs(question, answer)`` sqlite table.

    Callers pass utterances that are already case-folded; stored questions
    are folded with the same Python ``casefold`` so non-ASCII text compares
    the way it does in the classifier.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._lock = threading.Lock()
        self._conn = self._connect()

    def _connect(self) -> sqlite3.Connection:
        if not self._db_path.is_file():
            raise FileNotFoundError(f"FAQ database not found: {self._db_path}")
        uri = f"{self._db_path.resolve().as_uri()}?mode=ro"
        conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        return conn

    def _fetch_one(self, sql: str, needle: str) -> FAQRecord | None:
        with self._lock:
            row = self._conn.execute(sql, (needle,)).fetchone()
        if row is None:
            return None
        return FAQRecord(question=row[0], answer=row[1])

    def find_exact(self, normalized_question: str) -> FAQRecord | None:
        return self._fetch_one(_EXACT_SQL, normalized_question)

    def find_containing(self, normalized_fragment: str) -> FAQRecord | None:
        return self._fetch_one(_CONTAINS_SQL, normalized_fragment)

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def create_faq_db(db_path: str | Path, records: list[FAQRecord]) -> int:
    """Create (or extend) a FAQ database. Used by scripts and tests only."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        conn.execute("CREATE TABLE IF NOT EXISTS faqs (question TEXT NOT NULL, answer TEXT NOT NULL)")
        conn.executemany(
            "INSERT INTO faqs (question, answer) VALUES (?, ?)",
            [(record.question, record.answer) for record in records],
        )
        conn.commit()
    finally:
        conn.close()
    return len(records)
