"""
JWT bearer-token helpers and middleware for the Flask API.

Tokens are issued by the external identity provider; the API only checks
the signature and expiry and reads the actor id from ``sub``.
"""

from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Dict, Optional

import jwt
from flask import jsonify, request

from fieldops.config import SECRET_KEY, TOKEN_EXPIRY_HOURS


def generate_token(user_id: str, expiry_hours: float = TOKEN_EXPIRY_HOURS, secret: str = SECRET_KEY) -> str:
    """Mint a bearer token for an actor id (development and tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(hours=expiry_hours),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def verify_token(token: str, secret: str = SECRET_KEY) -> Optional[Dict[str, Any]]:
    """Verify a JWT and return the decoded payload (or None)."""
    try:
        return jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def token_required(f):
    """Decorator that protects endpoints with JWT authentication."""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = None

        if "Authorization" in request.headers:
            auth_header = request.headers["Authorization"]
            try:
                token = auth_header.split(" ")[1]
            except IndexError:
                return jsonify({"error": "Invalid authorization header format"}), 401

        # Fallback for CSV downloads opened as plain links
        if not token:
            token = request.args.get("token")

        if not token:
            return jsonify({"error": "Authentication token is missing"}), 401

        payload = verify_token(token)
        if not payload or not payload.get("sub"):
            return jsonify({"error": "Invalid or expired token"}), 401

        request.user_id = str(payload["sub"])
        return f(*args, **kwargs)

    return decorated
