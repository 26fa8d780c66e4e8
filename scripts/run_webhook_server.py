#!/usr/bin/env python3
from __future__ import annotations

import argparse
import http.server
import json
import os
import sys
import uuid

sys.path.append("src")
from faq_webhook.app import build_pipeline  # noqa: E402
from faq_webhook.config import Settings  # noqa: E402


def _make_handler(pipeline):
    class WebhookHandler(http.server.BaseHTTPRequestHandler):
        def _send(self, status: int, body: bytes, content_type: str) -> None:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self) -> None:  # noqa: N802
            if self.path == "/":
                self._send(200, b"Chatbot is running.", "text/plain; charset=utf-8")
            else:
                self._send(404, b'{"error": "not_found"}', "application/json")

        def do_POST(self) -> None:  # noqa: N802
            if self.path != "/webhook":
                self._send(404, b'{"error": "not_found"}', "application/json")
                return
            length = int(self.headers.get("Content-Length") or 0)
            raw_body = self.rfile.read(length) if length else b""
            result = pipeline.handle(dict(self.headers.items()), raw_body, request_id=str(uuid.uuid4()))
            self._send(result.status_code, json.dumps(result.payload).encode("utf-8"), "application/json")

    return WebhookHandler


def main() -> int:
    settings = Settings.from_env()
    parser = argparse.ArgumentParser(description="Run the FAQ webhook locally")
    parser.add_argument("--port", type=int, default=settings.port, help="Local port to listen on")
    args = parser.parse_args()

    try:
        pipeline = build_pipeline(settings)
    except (FileNotFoundError, ValueError) as exc:
        raise SystemExit(f"Failed to start: {exc}")

    server = http.server.ThreadingHTTPServer(("", args.port), _make_handler(pipeline))
    print(f"Listening on http://localhost:{args.port} (pid {os.getpid()})")
    print("Press Ctrl+C to stop")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
