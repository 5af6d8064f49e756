"""API key issuing and verification.

Keys look like ``ocp_<agent_id>.<secret>``. The agent id lets us find the
stored bcrypt hash of the secret without scanning; the secret itself is
never stored.
"""
import re
import secrets
from typing import Optional

import bcrypt

from clawpoker.config import config
from clawpoker.game.errors import RejectedError, UnauthorizedError

KEY_PREFIX = "ocp_"
NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{2,32}$")


def validate_agent_name(name: str) -> str:
    """Check an agent name: 2-32 letters, digits, '_' or '-'.
    
    Returns:
        The name, stripped.
        
    Raises:
        RejectedError: If the name is not allowed.
    """
    name = name.strip()
    if not NAME_PATTERN.match(name):
        raise RejectedError(
            "INVALID_NAME",
            "Name must be 2-32 characters of letters, numbers, underscores or hyphens"
        )
    return name


def hash_secret(secret: str, rounds: Optional[int] = None) -> str:
    """Hash a key secret using bcrypt.
    
    Args:
        secret: Plain text secret.
        rounds: bcrypt cost factor; defaults to config.
        
    Returns:
        Hashed secret string.
    """
    salt = bcrypt.gensalt(rounds=rounds or config.api_key_rounds)
    return bcrypt.hashpw(secret.encode("utf-8"), salt).decode("utf-8")


def verify_secret(secret: str, hashed: str) -> bool:
    """Verify a key secret against its hash."""
    return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))


def issue_api_key(agent_id: str) -> tuple[str, str]:
    """Create a new API key for an agent.
    
    Returns:
        (api_key, secret_hash). Show the key once; store only the hash.
    """
    secret = secrets.token_urlsafe(24)
    return f"{KEY_PREFIX}{agent_id}.{secret}", hash_secret(secret)


def parse_api_key(api_key: str) -> tuple[str, str]:
    """Split a key into (agent_id, secret).
    
    Raises:
        UnauthorizedError: If the key is malformed.
    """
    if not api_key or not api_key.startswith(KEY_PREFIX):
        raise UnauthorizedError()
    agent_id, dot, secret = api_key[len(KEY_PREFIX):].partition(".")
    if not dot or not agent_id or not secret:
        raise UnauthorizedError()
    return agent_id, secret


def bearer_token(authorization: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer ...`` header."""
    if not authorization:
        raise UnauthorizedError("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Authorization header must be 'Bearer <api key>'")
    return token.strip()
