from __future__ import annotations

import os
from dataclasses import replace
from datetime import datetime, timezone

import jwt
import pytest

from trylog_identity.domain.account import Account
from trylog_identity.domain.exceptions import ExhaustedPoolError, TokenFormatError
from trylog_identity.security.codec import decode_from_transport, encode_for_transport
from trylog_identity.security.passwords import (
    DIGITS,
    LOWERCASE,
    SYMBOLS,
    UPPERCASE,
    generate_random_password,
    hash_password,
    password_policy_errors,
    verify_password,
)
from trylog_identity.security.tokens import decode_access_token, issue_access_token


def make_account() -> Account:
    now = datetime.now(timezone.utc)
    return Account(
        account_id="acc-1",
        email="ann@example.com",
        full_name="Ann",
        created_at=now,
        updated_at=now,
        deleted=False,
    )


@pytest.mark.parametrize(
    "raw",
    [b"", b"f", b"fo", b"foo", b"\xfb\xff\xfe", os.urandom(64), "CfDJ8+token/with==".encode()],
)
def test_codec_round_trip(raw):
    encoded = encode_for_transport(raw)
    assert "+" not in encoded and "/" not in encoded and "=" not in encoded
    assert decode_from_transport(encoded) == raw


def test_codec_rejects_impossible_length():
    with pytest.raises(TokenFormatError):
        decode_from_transport("abcde")


@pytest.mark.parametrize("value", ["a!b@c#d", "ab+/", "abc=", "ab cd", "tok\u00e9n"])
def test_codec_rejects_characters_outside_url_safe_alphabet(value):
    with pytest.raises(TokenFormatError):
        decode_from_transport(value)


def test_random_password_composition():
    password = generate_random_password()

    assert len(password) == 4 * 7
    for offset in range(0, len(password), 4):
        block = password[offset:offset + 4]
        assert block[0] in UPPERCASE
        assert block[1] in LOWERCASE
        assert block[2] in SYMBOLS
        assert block[3] in DIGITS
    # pools are drawn without replacement
    assert len(set(password)) == len(password)
    assert password_policy_errors(password) == []


def test_symbol_pool_excludes_quote_and_backslash():
    assert '"' not in SYMBOLS and "\\" not in SYMBOLS
    assert len(SYMBOLS) == 30
    assert not set(SYMBOLS) & set(UPPERCASE + LOWERCASE + DIGITS)


def test_random_password_pool_exhaustion():
    assert len(generate_random_password(11)) == 40
    with pytest.raises(ExhaustedPoolError):
        generate_random_password(12)
    with pytest.raises(ValueError):
        generate_random_password(1)


def test_password_hashing():
    hashed = hash_password("P@ssw0rd")
    assert hashed != "P@ssw0rd"
    assert verify_password("P@ssw0rd", hashed)
    assert not verify_password("p@ssw0rd", hashed)
    assert not verify_password("P@ssw0rd", "not-a-hash")


def test_password_policy():
    assert password_policy_errors("abc") == [
        "PasswordTooShort",
        "PasswordRequiresDigit",
        "PasswordRequiresUpper",
        "PasswordRequiresNonAlphanumeric",
    ]


def test_issue_access_token_claims(settings):
    issued = issue_access_token(make_account(), settings)

    claims = decode_access_token(issued.token, settings)
    assert claims["sub"] == claims["email"] == "ann@example.com"
    assert claims["role"] == "user_default"
    assert claims["name"] == "Ann"
    assert claims["iss"] == settings.jwt_issuer
    assert claims["exp"] == int(issued.expires_at.timestamp())
    assert issued.expiry_message.startswith("Token will expire on: ")


def test_issue_access_token_unique_jti(settings):
    first = decode_access_token(issue_access_token(make_account(), settings).token, settings)
    second = decode_access_token(issue_access_token(make_account(), settings).token, settings)
    assert first["jti"] != second["jti"]


def test_decode_rejects_foreign_signature(settings):
    issued = issue_access_token(make_account(), settings)
    other = replace(settings, jwt_secret="another-secret-0123456789abcdef012345")
    with pytest.raises(jwt.InvalidSignatureError):
        decode_access_token(issued.token, other)


def test_decode_rejects_expired_token(settings):
    expired = replace(settings, jwt_hours=-1)
    issued = issue_access_token(make_account(), expired)
    with pytest.raises(jwt.ExpiredSignatureError):
        decode_access_token(issued.token, settings)
