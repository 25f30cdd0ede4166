"""
Token Provider Tests
====================
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from jose import jwt

from bulk_export.core import security
from bulk_export.core.config import settings
from bulk_export.core.exceptions import AuthenticationError
from bulk_export.core.security import AlphaTokenProvider, LocalTokenProvider, get_token_provider

from conftest import ORG_ID, USER_ID


def test_local_provider_round_trip():
    provider = LocalTokenProvider("s3cret")

    data = provider.validate(provider.issue(USER_ID, ORG_ID))

    assert data.user_id == USER_ID
    assert data.org_id == ORG_ID
    assert data.token_id


def test_local_provider_claims():
    provider = LocalTokenProvider("s3cret")

    claims = provider.decode(provider.issue(USER_ID, ORG_ID, expires_delta=timedelta(minutes=5)))

    assert set(claims) == {"sub", "aco", "id", "iat", "exp"}
    assert claims["exp"] - claims["iat"] == 300


def test_expired_token_is_rejected():
    provider = LocalTokenProvider("s3cret")
    token = provider.issue(USER_ID, ORG_ID, expires_delta=timedelta(seconds=-10))

    with pytest.raises(AuthenticationError):
        provider.validate(token)


def test_token_signed_with_other_secret_is_rejected():
    token = LocalTokenProvider("one").issue(USER_ID, ORG_ID)

    with pytest.raises(AuthenticationError):
        LocalTokenProvider("two").validate(token)


def test_missing_claims_are_rejected():
    token = jwt.encode({"sub": USER_ID, "exp": 9999999999}, "s3cret", algorithm="HS256")

    with pytest.raises(AuthenticationError, match="aco"):
        LocalTokenProvider("s3cret").validate(token)


def test_local_provider_requires_secret():
    with pytest.raises(RuntimeError):
        LocalTokenProvider("")


def test_alpha_provider_uses_rs512(rsa_key_pair, tmp_path):
    private_pem, public_pem = rsa_key_pair
    (tmp_path / "private.pem").write_text(private_pem)
    (tmp_path / "public.pem").write_text(public_pem)

    provider = AlphaTokenProvider.from_files(str(tmp_path / "private.pem"), str(tmp_path / "public.pem"))
    token = provider.issue(USER_ID, ORG_ID)

    assert jwt.get_unverified_header(token)["alg"] == "RS512"
    assert provider.validate(token).org_id == ORG_ID


def test_alpha_provider_requires_key_files():
    with pytest.raises(RuntimeError):
        AlphaTokenProvider.from_files(None, None)


def test_provider_selected_from_settings(monkeypatch):
    get_token_provider.cache_clear()
    monkeypatch.setattr(settings, "AUTH_PROVIDER", "local")
    try:
        assert isinstance(get_token_provider(), LocalTokenProvider)
    finally:
        get_token_provider.cache_clear()


def test_unknown_provider(monkeypatch):
    get_token_provider.cache_clear()
    monkeypatch.setattr(settings, "AUTH_PROVIDER", "okta")
    try:
        with pytest.raises(RuntimeError, match="okta"):
            security.get_token_provider()
    finally:
        get_token_provider.cache_clear()
