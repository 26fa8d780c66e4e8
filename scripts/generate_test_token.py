#!/usr/bin/env python3
"""Generate an RSA key pair, a JWKS document and a signed webhook token.

Serve the JWKS file over HTTP (for example ``python -m http.server``) and pass
its URL as ``--key-set-url`` so the token's claims point at it.
"""
from __future__ import annotations

import argparse
import json
import pathlib
import time

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a signed token and JWKS for local testing")
    parser.add_argument("--key-set-url", required=True, help="URL the JWKS document will be served from")
    parser.add_argument("--jwks-out", default="jwks.json", help="Where to write the JWKS document")
    parser.add_argument("--kid", default="local-key-1", help="Key id to publish and sign with")
    parser.add_argument("--ttl", type=int, default=3600, help="Token lifetime in seconds")
    args = parser.parse_args()

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    jwk = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
    jwk.update({"kid": args.kid, "use": "sig", "alg": "RS256"})
    pathlib.Path(args.jwks_out).write_text(json.dumps({"keys": [jwk]}, indent=2))

    now = int(time.time())
    token = jwt.encode(
        {"iat": now, "exp": now + args.ttl, "publicKeyUrl": args.key_set_url},
        private_key,
        algorithm="RS256",
        headers={"kid": args.kid},
    )
    print(token)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
