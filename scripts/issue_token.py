#!/usr/bin/env python3
"""
Mint a development bearer token for an actor id.

In production tokens come from the identity provider; this signs one with
JWT_SECRET_KEY so the API can be exercised locally.

Usage:
    python scripts/issue_token.py <uid> [hours]
"""

import sys

from fieldops.api.auth import generate_token
from fieldops.config import TOKEN_EXPIRY_HOURS


def main(argv):
    if len(argv) < 2:
        print(__doc__.strip(), file=sys.stderr)
        return 2
    uid = argv[1]
    try:
        hours = float(argv[2]) if len(argv) > 2 else TOKEN_EXPIRY_HOURS
    except ValueError:
        print(f"[ERROR] hours must be a number, got '{argv[2]}'", file=sys.stderr)
        return 2

    token = generate_token(uid, expiry_hours=hours)
    print(f"[token] uid={uid} expires_in={hours}h")
    print(token)
    print(f"\ncurl -H 'Authorization: Bearer {token}' http://localhost:8000/api/me")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
