from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional

import jwt
import requests

from shared.constants import DEFAULT_KEY_SET_TIMEOUT_SECONDS
from shared.logging import get_logger

logger = get_logger("key_resolver")


class KeyResolutionError(Exception):
    pass


class KeyNotFound(KeyResolutionError):
    pass


class KeySetUnreachable(KeyResolutionError):
    pass


class KeyResolver:
    """Looks up public verification keys in a remote JWKS document.

    Resolved keys are cached per ``(location, key_id)``. A ``cache_ttl_seconds``
    of 0 keeps entries for the life of the process. Concurrent misses for the
    same key wait on a per-key lock so only one of them fetches; misses for
    different keys proceed independently.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_KEY_SET_TIMEOUT_SECONDS,
        cache_ttl_seconds: float = 0,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be greater than zero")
        self._timeout = timeout_seconds
        self._ttl = max(0.0, cache_ttl_seconds)
        self._session = session or requests.Session()
        self._clock = clock
        self._cache: dict[tuple[str, str], tuple[jwt.PyJWK, float]] = {}
        self._cache_lock = threading.Lock()
        # (location, kid) -> [lock, number of requests holding or waiting on it]
        self._key_locks: dict[tuple[str, str], list[Any]] = {}

    def _cached(self, cache_key: tuple[str, str]) -> jwt.PyJWK | None:
        with self._cache_lock:
            entry = self._cache.get(cache_key)
        if entry is None:
            return None
        key, stored_at = entry
        if self._ttl and self._clock() - stored_at >= self._ttl:
            return None
        return key

    def _acquire_key_lock(self, cache_key: tuple[str, str]) -> threading.Lock:
        with self._cache_lock:
            entry = self._key_locks.get(cache_key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._key_locks[cache_key] = entry
            entry[1] += 1
            lock = entry[0]
        lock.acquire()
        return lock

    def _release_key_lock(self, cache_key: tuple[str, str], lock: threading.Lock) -> None:
        lock.release()
        # Drop the entry once no request is waiting on it; key ids come from
        # unverified tokens and must not accumulate.
        with self._cache_lock:
            entry = self._key_locks.get(cache_key)
            if entry is not None:
                entry[1] -= 1
                if entry[1] <= 0:
                    del self._key_locks[cache_key]

    def _fetch_key_set(self, location: str) -> list[dict[str, Any]]:
        try:
            response = self._session.get(
                location,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise KeySetUnreachable(f"Key set fetch failed: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise KeySetUnreachable(f"Key set fetch returned HTTP {response.status_code}")

        try:
            document = response.json()
        except ValueError as exc:
            raise KeySetUnreachable("Key set document is not valid JSON") from exc

        keys = document.get("keys") if isinstance(document, dict) else None
        if not isinstance(keys, list):
            raise KeySetUnreachable("Key set document has no keys list")
        return [entry for entry in keys if isinstance(entry, dict)]

    def resolve(self, key_id: str, key_set_location: str) -> jwt.PyJWK:
        cache_key = (key_set_location, key_id)
        cached = self._cached(cache_key)
        if cached is not None:
            return cached

        lock = self._acquire_key_lock(cache_key)
        try:
            # Another request may have filled the cache while we waited.
            cached = self._cached(cache_key)
            if cached is not None:
                return cached

            entries = self._fetch_key_set(key_set_location)
            match = next((entry for entry in entries if entry.get("kid") == key_id), None)
            if match is None:
                logger.warning(
                    "key_id_not_in_key_set",
                    extra={"key_id": key_id, "extra": {"key_count": len(entries)}},
                )
                raise KeyNotFound(f"No key with id {key_id!r} in key set")

            try:
                key = jwt.PyJWK(match)
            except (jwt.PyJWKError, jwt.InvalidKeyError) as exc:
                raise KeyNotFound(f"Key {key_id!r} is not a usable public key") from exc

            with self._cache_lock:
                self._cache[cache_key] = (key, self._clock())
            logger.info("key_resolved", extra={"key_id": key_id})
            return key
        finally:
            self._release_key_lock(cache_key, lock)

    def clear(self) -> None:
        with self._cache_lock:
            self._cache.clear()
