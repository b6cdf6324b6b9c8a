"""Bearer-token identity supplied by the external identity provider."""
from __future__ import annotations

from flask import current_app, request
from itsdangerous import BadData, URLSafeTimedSerializer

TOKEN_SALT = "auth-token"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def build_token(payload: dict[str, object]) -> str:
    return _serializer().dumps(payload)


def _token_payload() -> dict | None:
    auth_header = request.headers.get("Authorization", "")

    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]  # Remove "Bearer " prefix

    try:
        payload = _serializer().loads(token, max_age=current_app.config.get("TOKEN_MAX_AGE_SECONDS", 86400))
    except BadData:
        # Invalid or expired token
        return None
    return payload if isinstance(payload, dict) else None


def get_jwt_identity() -> int | None:
    """Extract and validate the client id from the Authorization header token.

    Returns the client id if the token is valid, None if missing or invalid.
    """
    payload = _token_payload()
    if not payload or payload.get("client_id") is None:
        return None
    return int(payload["client_id"])


def get_actor_role() -> str:
    """Role claimed by the token; anything but "admin" acts as the client."""
    payload = _token_payload() or {}
    return "admin" if payload.get("role") == "admin" else "client"
