#!/usr/bin/env python3
"""
Tests for the session gate
"""

from datetime import timedelta
from http.cookies import SimpleCookie

import pytest
from fastapi import Request, Response

from cms_errors import Unauthenticated
from session_gate import AuthContext, SessionCodec, require_signed_in


def request_with_cookies(cookies):
    header = "; ".join(f"{key}={value}" for key, value in cookies.items())
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(b"cookie", header.encode("latin-1"))],
    })


def cookies_set_by(response: Response):
    jar = SimpleCookie()
    for value in response.headers.getlist("set-cookie"):
        jar.load(value)
    return {key: morsel.value for key, morsel in jar.items()}


@pytest.fixture
def codec():
    return SessionCodec(secret_key="test-secret")


def test_require_signed_in():
    assert require_signed_in(AuthContext(username="admin")) == "admin"
    with pytest.raises(Unauthenticated) as exc_info:
        require_signed_in(AuthContext())
    assert exc_info.value.message == "You must be signed in to do that."


def test_no_cookie_is_anonymous(codec):
    auth = codec.auth_context(request_with_cookies({}))
    assert auth.signed_in is False
    assert auth.username is None


def test_sign_in_round_trip(codec):
    response = Response()
    codec.sign_in(response, "admin")

    auth = codec.auth_context(request_with_cookies(cookies_set_by(response)))
    assert auth.signed_in
    assert auth.username == "admin"


def test_token_signed_with_another_key_is_anonymous(codec):
    response = Response()
    SessionCodec(secret_key="someone-else").sign_in(response, "admin")

    auth = codec.auth_context(request_with_cookies(cookies_set_by(response)))
    assert not auth.signed_in


def test_tampered_token_is_anonymous(codec):
    response = Response()
    codec.sign_in(response, "admin")
    token = cookies_set_by(response)["folio_session"]

    auth = codec.auth_context(request_with_cookies({"folio_session": token[:-4] + "AAAA"}))
    assert not auth.signed_in


def test_expired_token_is_anonymous(codec):
    token = codec._encode({"sub": "admin"}, timedelta(seconds=-60))
    auth = codec.auth_context(request_with_cookies({"folio_session": token}))
    assert not auth.signed_in


def test_sign_out_deletes_cookie(codec):
    response = Response()
    codec.sign_out(response)
    header = response.headers["set-cookie"]
    assert header.startswith("folio_session=")
    assert "Max-Age=0" in header


def test_flash_round_trip(codec):
    response = Response()
    codec.set_flash(response, "success", "about.md was created.")
    request = request_with_cookies(cookies_set_by(response))

    assert codec.has_flash(request)
    flash = codec.read_flash(request)
    assert flash.kind == "success"
    assert flash.message == "about.md was created."


def test_unreadable_flash_is_ignored(codec):
    request = request_with_cookies({"folio_flash": "garbage"})
    assert codec.has_flash(request)
    assert codec.read_flash(request) is None
