"""
SnapCap Backend: Password and Token Unit Tests
================================================

What we test:
    ✅ Password hashes verify and never equal the plain text
    ✅ Access tokens round trip to the user id
    ✅ Missing / expired / tampered / wrong-type tokens get distinct messages
    ✅ Bearer header parsing
"""

import uuid
from datetime import timedelta

import pytest

from snapcap.exceptions import AuthenticationError
from snapcap.services.security import (
    ACCESS,
    REFRESH,
    create_token,
    create_token_pair,
    decode_token,
    extract_bearer,
    fingerprint,
    hash_password,
    verify_password,
)


class TestPasswords:
    def test_hash_verifies(self):
        hashed = hash_password("Passw0rd")
        assert hashed != "Passw0rd"
        assert verify_password(hashed, "Passw0rd")

    def test_wrong_password_rejected(self):
        assert not verify_password(hash_password("Passw0rd"), "passw0rd")

    def test_hashes_are_salted(self):
        assert hash_password("Passw0rd") != hash_password("Passw0rd")


class TestTokens:
    def test_access_token_round_trip(self):
        user_id = uuid.uuid4()
        token, _ = create_token(user_id)
        assert decode_token(token) == user_id

    def test_pair_tokens_differ_and_decode_by_type(self):
        user_id = uuid.uuid4()
        access, refresh, expires_at = create_token_pair(user_id)
        assert access != refresh
        assert decode_token(access, ACCESS) == user_id
        assert decode_token(refresh, REFRESH) == user_id

    def test_missing_token(self):
        with pytest.raises(AuthenticationError) as exc_info:
            decode_token(None)
        assert exc_info.value.message == AuthenticationError.MISSING
        assert exc_info.value.status_code == 401

    def test_expired_token(self):
        token, _ = create_token(uuid.uuid4(), expires_delta=timedelta(seconds=-10))
        with pytest.raises(AuthenticationError) as exc_info:
            decode_token(token)
        assert exc_info.value.message == AuthenticationError.EXPIRED

    def test_tampered_token(self):
        token, _ = create_token(uuid.uuid4())
        with pytest.raises(AuthenticationError) as exc_info:
            decode_token(token[:-2] + ("aa" if not token.endswith("aa") else "bb"))
        assert exc_info.value.message == AuthenticationError.INVALID

    def test_refresh_token_is_not_an_access_token(self):
        """Different secrets, so a refresh token fails the access check."""
        _, refresh, _ = create_token_pair(uuid.uuid4())
        with pytest.raises(AuthenticationError) as exc_info:
            decode_token(refresh, ACCESS)
        assert exc_info.value.message == AuthenticationError.INVALID

    def test_fingerprint_is_stable(self):
        assert fingerprint("abc") == fingerprint("abc")
        assert len(fingerprint("abc")) == 64


class TestBearer:
    @pytest.mark.parametrize(
        "header,expected",
        [
            ("Bearer abc.def", "abc.def"),
            ("bearer   abc", "abc"),
            ("Basic abc", None),
            ("Bearer ", None),
            (None, None),
        ],
    )
    def test_extract_bearer(self, header, expected):
        assert extract_bearer(header) == expected
