#!/usr/bin/env python3
"""
Generate the HS256 secret shared with the identity provider.

Usage:
    python scripts/generate_secret_key.py            # print a JWT_SECRET_KEY line
    python scripts/generate_secret_key.py .env       # also write it into .env
"""

import secrets
import sys
from pathlib import Path


def upsert_env_line(env_path: Path, name: str, value: str) -> None:
    """Replace ``name=...`` in an env file, or append it."""
    lines = env_path.read_text(encoding="utf-8").splitlines() if env_path.exists() else []
    kept = [ln for ln in lines if not ln.startswith(f"{name}=")]
    kept.append(f"{name}={value}")
    env_path.write_text("\n".join(kept) + "\n", encoding="utf-8")


if __name__ == "__main__":
    secret_key = secrets.token_hex(32)
    print(f"JWT_SECRET_KEY={secret_key}")

    if len(sys.argv) > 1:
        env_path = Path(sys.argv[1])
        upsert_env_line(env_path, "JWT_SECRET_KEY", secret_key)
        print(f"[init] Wrote JWT_SECRET_KEY to {env_path}")
    else:
        print("Copy the line above to your .env file (tokens signed with the old key stop working).")
