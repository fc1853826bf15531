from __future__ import annotations

from datetime import datetime, timedelta, timezone

from boaapi.session import COOKIE_HEADER, CSRF_HEADER, SessionState, parse_set_cookie


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2022, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


def test_apply_is_noop_without_state() -> None:
    headers: dict[str, str] = {}
    SessionState().apply(headers)
    assert headers == {}


def test_apply_combines_cookies_and_token() -> None:
    session = SessionState()
    session.absorb({"Set-Cookie": ["SESSa=one; path=/; HttpOnly", "has_js=1"]})
    session.set_token("tok")

    headers: dict[str, str] = {}
    session.apply(headers)

    assert headers[COOKIE_HEADER] == "SESSa=one; has_js=1"
    assert headers[CSRF_HEADER] == "tok"


def test_max_age_cookie_expires_and_is_purged() -> None:
    clock = _Clock()
    session = SessionState(clock=clock)
    session.absorb({"set-cookie": "short=1; Max-Age=60"})
    session.absorb({"set-cookie": "long=2"})

    clock.advance(61)
    headers: dict[str, str] = {}
    session.apply(headers)

    assert headers[COOKIE_HEADER] == "long=2"
    assert session.cookies() == {"long": "2"}


def test_absolute_expires_directive() -> None:
    clock = _Clock()
    session = SessionState(clock=clock)
    session.absorb({"Set-Cookie": "a=1; expires=Tue, 01-Mar-2022 12:30:00 GMT"})

    assert session.cookies() == {"a": "1"}
    clock.advance(31 * 60)
    assert session.cookies() == {}


def test_same_name_overwrites_and_others_survive() -> None:
    session = SessionState()
    session.absorb({"Set-Cookie": ["a=1", "b=2"]})
    session.absorb({"Set-Cookie": "a=3"})
    assert session.cookies() == {"a": "3", "b": "2"}


def test_already_expired_directive_deletes_cookie() -> None:
    clock = _Clock()
    session = SessionState(clock=clock)
    session.absorb({"Set-Cookie": "a=1"})
    session.absorb({"Set-Cookie": "a=deleted; expires=Thu, 01 Jan 1970 00:00:01 GMT"})
    assert session.cookies() == {}


def test_parse_set_cookie_prefers_max_age() -> None:
    now = datetime(2022, 3, 1, tzinfo=timezone.utc)
    parsed = parse_set_cookie("x=y; Expires=Wed, 01 Mar 2023 00:00:00 GMT; Max-Age=10", now)
    assert parsed is not None
    name, cookie = parsed
    assert name == "x"
    assert cookie.value == "y"
    assert cookie.expires == now + timedelta(seconds=10)


def test_parse_set_cookie_ignores_nameless_headers() -> None:
    assert parse_set_cookie("garbage", datetime.now(timezone.utc)) is None
