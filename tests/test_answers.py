import sqlite3
from unittest.mock import MagicMock, patch

import pytest

from faq_webhook.answers import AnswerResolver, ContainsMatcher, ExactMatcher, matcher_for_mode
from faq_webhook.classifier import normalize_utterance
from shared.constants import FALLBACK_ANSWER
from shared.faq_store import FaqStore, create_faq_db
from shared.schema import FAQRecord


@pytest.fixture
def store(faq_db):
    faq_store = FaqStore(faq_db)
    yield faq_store
    faq_store.close()


@pytest.mark.parametrize(
    "utterance",
    ["What Is The WiFi Password", "what is the wifi password", "  WHAT IS THE WIFI PASSWORD "],
)
def test_exact_match_ignores_case(store, utterance) -> None:
    resolver = AnswerResolver(store, ExactMatcher())

    assert resolver.resolve(normalize_utterance(utterance)) == "Ask IT."


def test_exact_match_folds_stored_question_case(store) -> None:
    resolver = AnswerResolver(store, ExactMatcher())

    assert resolver.resolve(normalize_utterance("how do i reset my password")) == "Use the self-service portal."


def test_exact_match_folds_non_ascii(store) -> None:
    resolver = AnswerResolver(store, ExactMatcher())

    assert resolver.resolve(normalize_utterance("OÙ EST LA CANTINE")) == "Au rez-de-chaussée."


def test_exact_match_does_not_match_fragments(store) -> None:
    resolver = AnswerResolver(store, ExactMatcher())

    assert resolver.resolve("reset password") == FALLBACK_ANSWER
    assert resolver.resolve("wifi") == FALLBACK_ANSWER


def test_contains_match_prefers_shortest_question(store) -> None:
    resolver = AnswerResolver(store, ContainsMatcher())

    # "password" appears in three questions; "reset password for email" is shortest.
    assert resolver.resolve("password") == "Contact the help desk."
    assert resolver.resolve("my password") == "Use the self-service portal."
    assert resolver.resolve("wifi") == "Ask IT."


def test_contains_match_falls_back_when_nothing_matches(store) -> None:
    resolver = AnswerResolver(store, ContainsMatcher())

    assert resolver.resolve("vacation policy") == FALLBACK_ANSWER


def test_contains_match_treats_like_wildcards_literally(tmp_path) -> None:
    db_path = tmp_path / "wild.db"
    create_faq_db(db_path, [FAQRecord(question="discount 50% off", answer="Yes.")])
    faq_store = FaqStore(db_path)
    try:
        resolver = AnswerResolver(faq_store, ContainsMatcher())
        assert resolver.resolve("%") == "Yes."
        assert resolver.resolve("_") == FALLBACK_ANSWER
    finally:
        faq_store.close()


def test_store_errors_degrade_to_fallback() -> None:
    broken = MagicMock()
    broken.find_exact.side_effect = sqlite3.OperationalError("no such table: faqs")

    assert AnswerResolver(broken, ExactMatcher()).resolve("anything") == FALLBACK_ANSWER


def test_overlong_utterance_skips_lookup() -> None:
    store = MagicMock()

    assert AnswerResolver(store).resolve("x" * 5000) == FALLBACK_ANSWER
    store.find_exact.assert_not_called()


def test_store_is_read_only(faq_db) -> None:
    faq_store = FaqStore(faq_db)
    try:
        with pytest.raises(sqlite3.OperationalError):
            faq_store._conn.execute("INSERT INTO faqs (question, answer) VALUES ('q', 'a')")
    finally:
        faq_store.close()


def test_store_requires_existing_database(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        FaqStore(tmp_path / "missing.db")


def test_matcher_for_mode() -> None:
    assert isinstance(matcher_for_mode("exact"), ExactMatcher)
    assert isinstance(matcher_for_mode(" Contains "), ContainsMatcher)
    with pytest.raises(ValueError):
        matcher_for_mode("fuzzy")


def test_overlong_utterance_is_logged_apart_from_no_match() -> None:
    store = MagicMock()

    with patch("faq_webhook.answers.logger") as logger:
        AnswerResolver(store).resolve("x" * 5000)

    logger.info.assert_called_once()
    assert logger.info.call_args.args == ("faq_utterance_too_long",)
    assert logger.info.call_args.kwargs["extra"]["extra"]["length"] == 5000


def test_blank_utterance_returns_fallback_without_logging() -> None:
    with patch("faq_webhook.answers.logger") as logger:
        assert AnswerResolver(MagicMock()).resolve("") == FALLBACK_ANSWER

    logger.info.assert_not_called()
