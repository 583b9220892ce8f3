"""
Unit tests for the Gateway token verifier.
"""

import pytest

from newsfeed_shared.errors import (
    ExpiredCredentialError,
    InvalidCredentialError,
    MissingCredentialError,
)
from service_gateway.app.auth import Identity, TokenVerifier

from factories import TEST_JWT_SECRET


class TestTokenVerifier:
    """Test cases for TokenVerifier."""

    @pytest.fixture
    def verifier(self):
        """Create TokenVerifier instance."""
        return TokenVerifier(TEST_JWT_SECRET)

    def test_requires_secret(self):
        """A verifier cannot be built without a shared secret."""
        with pytest.raises(ValueError):
            TokenVerifier("")

    def test_verify_valid_token(self, verifier, token_factory):
        """A valid token yields the caller identity."""
        token = token_factory.generate_access_token(user_id=42, username="bob", role="admin")

        identity = verifier.verify(token)

        assert isinstance(identity, Identity)
        assert identity.user_id == 42
        assert identity.username == "bob"
        assert identity.role == "admin"
        assert identity.expires_at is not None
        assert identity.issued_at is not None

    def test_role_defaults_to_user(self, verifier, token_factory):
        """Tokens without a role claim map to the plain user role."""
        identity = verifier.verify(token_factory.generate_access_token(user_id=3))
        assert identity.role == "user"

    def test_string_user_id_is_coerced(self, verifier, token_factory):
        """Numeric string ids are accepted."""
        identity = verifier.verify(token_factory.generate_access_token(user_id="17"))
        assert identity.user_id == 17

    def test_falls_back_to_sub_claim(self, verifier, token_factory):
        """The subject claim is used when no id claim is present."""
        token = token_factory.generate_access_token(user_id=None, sub="9")
        assert verifier.verify(token).user_id == 9

    def test_wrong_signature_is_invalid(self, verifier, token_factory):
        """A token signed with another secret is rejected with 403."""
        token = token_factory.generate_access_token(secret="another-secret")

        with pytest.raises(InvalidCredentialError) as exc_info:
            verifier.verify(token)

        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "Invalid or expired token"

    def test_expired_token(self, verifier, token_factory):
        """An expired token is rejected with 403."""
        token = token_factory.generate_access_token(expires_in=-60)

        with pytest.raises(ExpiredCredentialError) as exc_info:
            verifier.verify(token)

        assert exc_info.value.status_code == 403

    def test_expired_token_within_leeway(self, token_factory):
        """Leeway tolerates small clock skew."""
        verifier = TokenVerifier(TEST_JWT_SECRET, leeway_seconds=120)
        token = token_factory.generate_access_token(user_id=5, expires_in=-60)
        assert verifier.verify(token).user_id == 5

    def test_garbage_token(self, verifier):
        """A malformed token is rejected as invalid."""
        with pytest.raises(InvalidCredentialError):
            verifier.verify("not-a-token")

    @pytest.mark.parametrize("user_id", [0, -4, "abc", None])
    def test_unusable_user_id_claim(self, verifier, token_factory, user_id):
        """Tokens without a positive integer user id are invalid."""
        token = token_factory.generate_access_token(user_id=user_id)
        with pytest.raises(InvalidCredentialError):
            verifier.verify(token)

    @pytest.mark.parametrize("header", [None, "", "   ", "Bearer", "Bearer   "])
    def test_missing_credential(self, verifier, header):
        """Absent or empty bearer credentials are rejected with 401."""
        with pytest.raises(MissingCredentialError) as exc_info:
            verifier.verify_header(header)
        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Access token required"

    def test_wrong_scheme(self, verifier):
        """Non-bearer schemes are treated as a missing credential."""
        with pytest.raises(MissingCredentialError) as exc_info:
            verifier.verify_header("Basic dXNlcjpwYXNz")
        assert exc_info.value.message == "Invalid authorization header format"

    def test_verify_header(self, verifier, token_factory):
        """The scheme is matched case-insensitively."""
        token = token_factory.generate_access_token(user_id=8)
        assert verifier.verify_header(f"bearer {token}").user_id == 8
