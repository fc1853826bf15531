from __future__ import annotations

"""Credential discovery and redaction helpers.

Credentials come from explicit arguments, then `BOA_USERNAME` /
`BOA_PASSWORD`, then an interactive prompt. The password never appears in
reprs or in error text produced by the client.
"""

import getpass
import os
from dataclasses import dataclass, field

REDACTED = "******"


@dataclass
class BoaCredentials:
    """Username/password pair used for `user.login`."""

    username: str
    password: str = field(repr=False)

    def login_signature(self) -> str:
        """The call as it would be echoed back by a server error message."""
        return f"user.login({self.username!r}, {self.password!r})"

    def redact(self, text: str) -> str:
        """Scrub the login call signature and the password from `text`."""
        redacted = text.replace(
            self.login_signature(), f"user.login({self.username!r}, {REDACTED!r})"
        )
        if self.password:
            redacted = redacted.replace(self.password, REDACTED)
        return redacted


def load_credentials(
    *,
    username: str | None = None,
    password: str | None = None,
    prompt: bool = True,
) -> BoaCredentials:
    """Resolve credentials from args, env vars, and finally the console."""
    resolved_user = username or os.environ.get("BOA_USERNAME")
    resolved_password = password or os.environ.get("BOA_PASSWORD")

    if not resolved_user and prompt:
        resolved_user = input("Enter your Boa username: ").strip()
    if not resolved_password and prompt:
        resolved_password = getpass.getpass("Enter your Boa password: ")

    if not resolved_user or not resolved_password:
        raise ValueError("missing Boa credentials (username and password are required)")
    return BoaCredentials(username=resolved_user, password=resolved_password)
