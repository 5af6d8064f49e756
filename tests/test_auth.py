"""Tests for API key handling."""
import pytest

from clawpoker.auth.api_keys import (
    bearer_token,
    hash_secret,
    issue_api_key,
    parse_api_key,
    validate_agent_name,
    verify_secret,
)
from clawpoker.config import config
from clawpoker.game.errors import RejectedError, UnauthorizedError


class TestSecretHashing:
    """Test key secret hashing."""

    def test_hash_secret(self):
        """Test hashing produces a bcrypt hash, not the secret."""
        hashed = hash_secret("secret123", rounds=4)

        assert hashed != "secret123"
        assert hashed.startswith("$2")

    def test_hash_different_each_time(self):
        """Test same secret produces different hashes (due to salt)."""
        assert hash_secret("secret123", rounds=4) != hash_secret("secret123", rounds=4)

    def test_verify(self):
        """Test verifying correct and incorrect secrets."""
        hashed = hash_secret("secret123", rounds=4)

        assert verify_secret("secret123", hashed) is True
        assert verify_secret("wrong", hashed) is False
        assert verify_secret("", hashed) is False


class TestApiKeys:
    """Test issuing and parsing keys."""

    def test_issue_and_parse(self, monkeypatch):
        """Test an issued key parses back to its agent and verifies."""
        monkeypatch.setattr(config, "api_key_rounds", 4)

        api_key, hashed = issue_api_key("agent42")
        agent_id, secret = parse_api_key(api_key)

        assert api_key.startswith("ocp_agent42.")
        assert agent_id == "agent42"
        assert verify_secret(secret, hashed)

    @pytest.mark.parametrize("api_key", ["", "agent42.secret", "ocp_agent42", "ocp_.secret", "ocp_agent42."])
    def test_malformed(self, api_key):
        """Test malformed keys are unauthorized."""
        with pytest.raises(UnauthorizedError):
            parse_api_key(api_key)

    def test_bearer_token(self):
        """Test extracting the token from the header."""
        assert bearer_token("Bearer ocp_a.b") == "ocp_a.b"
        assert bearer_token("bearer  ocp_a.b ") == "ocp_a.b"

    @pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer "])
    def test_bad_header(self, header):
        """Test missing or non-bearer headers."""
        with pytest.raises(UnauthorizedError):
            bearer_token(header)


class TestAgentNames:
    """Test agent name rules."""

    @pytest.mark.parametrize("name", ["al", "alice_bot", "Bot-9", "x" * 32])
    def test_valid(self, name):
        """Test allowed names."""
        assert validate_agent_name(name) == name

    def test_strips_whitespace(self):
        """Test surrounding whitespace is ignored."""
        assert validate_agent_name("  alice ") == "alice"

    @pytest.mark.parametrize("name", ["a", "x" * 33, "has space", "émile", "semi;colon"])
    def test_invalid(self, name):
        """Test disallowed names."""
        with pytest.raises(RejectedError) as exc:
            validate_agent_name(name)
        assert exc.value.code == "INVALID_NAME"
