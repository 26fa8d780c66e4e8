#!/usr/bin/env python3
import base64
import json
import os
import pathlib
import sys

sys.path.append("src")
from faq_webhook.app import lambda_handler  # noqa: E402


def main() -> int:
    payload_path = pathlib.Path(sys.argv[1] if len(sys.argv) > 1 else "scripts/sample_chat_message.json")
    payload_bytes = payload_path.read_bytes()

    # Local runs sign with the bypass sentinel; the reply comes back inline.
    os.environ.setdefault("BYPASS_ENABLED", "true")
    token = os.getenv("SIGNATURE_TOKEN") or os.getenv("BYPASS_TOKEN", "dummy-token")

    event = {
        "requestContext": {"http": {"method": "POST"}, "requestId": "local-request-123"},
        "headers": {
            "Content-Type": "application/json",
            "X-Signature-Token": token,
        },
        "isBase64Encoded": True,
        "body": base64.b64encode(payload_bytes).decode("utf-8"),
    }

    out = lambda_handler(event, None)
    print(json.dumps(out, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
