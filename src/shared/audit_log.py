from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

from shared.logging import get_logger

logger = get_logger("audit_log")

_REDACTED = "<redacted>"


class AuditLog:
    """Append-only JSON-lines record of raw webhook requests.

    Write failures are logged and swallowed; auditing never blocks a request.
    """

    def __init__(self, path: str | Path, redact_headers: Iterable[str] = ()) -> None:
        self._path = Path(path)
        self._redact = {name.lower() for name in redact_headers} | {"authorization"}
        self._lock = threading.Lock()

    def _scrub(self, headers: Mapping[str, Any]) -> dict[str, Any]:
        return {
            str(key): (_REDACTED if str(key).lower() in self._redact else value)
            for key, value in (headers or {}).items()
        }

    def record(self, headers: Mapping[str, Any], body: bytes | str, request_id: str = "") -> None:
        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "request_id": request_id,
            "headers": self._scrub(headers),
            "body": body,
        }
        try:
            line = json.dumps(entry, default=str)
            with self._lock:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
        except (OSError, TypeError, ValueError):
            logger.warning("audit_log_write_failed", exc_info=True, extra={"request_id": request_id})
