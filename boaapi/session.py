from __future__ import annotations

"""Per-client session state: cookies and the anti-forgery (CSRF) token.

One `SessionState` belongs to exactly one transport. It is applied to every
outgoing request and absorbs the `Set-Cookie` headers of every response.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Mapping, MutableMapping

COOKIE_HEADER = "Cookie"
CSRF_HEADER = "X-CSRF-Token"

_DASHED_DATE_RE = re.compile(r"(\d{1,2})-([A-Za-z]{3})-(\d{2,4})")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StoredCookie:
    """A cookie value with its absolute expiry (None for session cookies)."""

    value: str
    expires: datetime | None = None

    def expired(self, now: datetime) -> bool:
        return self.expires is not None and now >= self.expires


def _parse_expires(raw: str) -> datetime | None:
    # Some servers send "Wed, 21-Oct-2026 07:28:00 GMT".
    text = _DASHED_DATE_RE.sub(r"\1 \2 \3", raw.strip())
    try:
        expires = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return None
    if expires is None:
        return None
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires


def parse_set_cookie(header: str, now: datetime) -> tuple[str, StoredCookie] | None:
    """Parse one `Set-Cookie` header value.

    `Max-Age` (relative to `now`) takes precedence over `Expires`. Returns
    None for headers without a usable `name=value` pair.
    """
    parts = header.split(";")
    name, sep, value = parts[0].partition("=")
    name = name.strip()
    if not sep or not name:
        return None

    expires: datetime | None = None
    max_age: int | None = None
    for attribute in parts[1:]:
        key, _, raw = attribute.partition("=")
        key = key.strip().lower()
        if key == "max-age":
            try:
                max_age = int(raw.strip())
            except ValueError:
                continue
        elif key == "expires":
            expires = _parse_expires(raw) or expires

    if max_age is not None:
        expires = now + timedelta(seconds=max_age)
    return name, StoredCookie(value=value.strip(), expires=expires)


def _set_cookie_values(headers: Any) -> list[str]:
    get_list = getattr(headers, "get_list", None)
    if callable(get_list):
        return list(get_list("set-cookie"))
    for key in headers:
        if key.lower() == "set-cookie":
            raw = headers[key]
            if isinstance(raw, str):
                return [raw]
            return list(raw)
    return []


class SessionState:
    """Cookies and CSRF token shared by all calls of one client."""

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._cookies: dict[str, StoredCookie] = {}
        self.token: str | None = None

    def set_token(self, token: str | None) -> None:
        """Store the anti-forgery token sent on every following request."""
        self.token = token or None

    def set_cookie(self, name: str, value: str, expires: datetime | None = None) -> None:
        cookie = StoredCookie(value=value, expires=expires)
        if cookie.expired(self._clock()):
            self._cookies.pop(name, None)
            return
        self._cookies[name] = cookie

    def cookies(self) -> dict[str, str]:
        """Return live cookies, purging any that have expired."""
        now = self._clock()
        for name in [name for name, cookie in self._cookies.items() if cookie.expired(now)]:
            del self._cookies[name]
        return {name: cookie.value for name, cookie in self._cookies.items()}

    def apply(self, headers: MutableMapping[str, str]) -> None:
        """Attach cookies and the CSRF token to outgoing request headers."""
        cookies = self.cookies()
        if cookies:
            headers[COOKIE_HEADER] = "; ".join(
                f"{name}={value}" for name, value in cookies.items()
            )
        if self.token is not None:
            headers[CSRF_HEADER] = self.token

    def absorb(self, headers: Mapping[str, Any]) -> None:
        """Record every `Set-Cookie` directive found in response headers."""
        now = self._clock()
        for raw in _set_cookie_values(headers):
            parsed = parse_set_cookie(raw, now)
            if parsed is None:
                continue
            name, cookie = parsed
            self.set_cookie(name, cookie.value, cookie.expires)
