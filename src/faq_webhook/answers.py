from __future__ import annotations

import sqlite3
from typing import Optional, Protocol

from shared.constants import FALLBACK_ANSWER, MAX_UTTERANCE_LENGTH
from shared.faq_store import FaqStore
from shared.logging import get_logger
from shared.schema import FAQRecord

logger = get_logger("answer_resolver")


class AnswerMatcher(Protocol):
    name: str

    def match(self, store: FaqStore, normalized_text: str) -> Optional[FAQRecord]:
        ...


class ExactMatcher:
    """Case-insensitive equality between utterance and stored question."""

    name = "exact"

    def match(self, store: FaqStore, normalized_text: str) -> Optional[FAQRecord]:
        return store.find_exact(normalized_text)


class ContainsMatcher:
    """Stored question contains the utterance.

    Short utterances can hit unrelated questions; when several rows match the
    shortest question wins, then the earliest row.
    """

    name = "contains"

    def match(self, store: FaqStore, normalized_text: str) -> Optional[FAQRecord]:
        return store.find_containing(normalized_text)


_MATCHERS = {
    ExactMatcher.name: ExactMatcher,
    ContainsMatcher.name: ContainsMatcher,
}


def matcher_for_mode(mode: str) -> AnswerMatcher:
    try:
        return _MATCHERS[mode.strip().lower()]()
    except KeyError as exc:
        raise ValueError(f"Unknown answer match mode: {mode!r}") from exc


class AnswerResolver:
    def __init__(
        self,
        store: FaqStore,
        matcher: Optional[AnswerMatcher] = None,
        fallback_answer: str = FALLBACK_ANSWER,
    ) -> None:
        self._store = store
        self._matcher = matcher or ExactMatcher()
        self._fallback = fallback_answer

    def resolve(self, normalized_text: str) -> str:
        if not normalized_text:
            return self._fallback
        if len(normalized_text) > MAX_UTTERANCE_LENGTH:
            logger.info(
                "faq_utterance_too_long",
                extra={"extra": {"length": len(normalized_text), "max_length": MAX_UTTERANCE_LENGTH}},
            )
            return self._fallback

        try:
            record = self._matcher.match(self._store, normalized_text)
        except (sqlite3.Error, ValueError):
            # A broken lookup must never fail the request.
            logger.exception("faq_lookup_failed", extra={"extra": {"match_mode": self._matcher.name}})
            return self._fallback

        if record is None:
            logger.info("faq_no_match", extra={"extra": {"match_mode": self._matcher.name}})
            return self._fallback
        return record.answer
