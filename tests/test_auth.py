from __future__ import annotations

import pytest

from boaapi.auth import REDACTED, BoaCredentials, load_credentials


def test_repr_hides_password() -> None:
    creds = BoaCredentials(username="alice", password="s3cret-pw")
    assert "s3cret-pw" not in repr(creds)


def test_redact_scrubs_signature_and_password() -> None:
    creds = BoaCredentials(username="alice", password="s3cret-pw")
    text = f"call {creds.login_signature()} failed; password s3cret-pw rejected"

    redacted = creds.redact(text)

    assert "s3cret-pw" not in redacted
    assert f"user.login('alice', '{REDACTED}')" in redacted


def test_explicit_arguments_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOA_USERNAME", "env-user")
    monkeypatch.setenv("BOA_PASSWORD", "env-pass")
    creds = load_credentials(username="bob", password="pw", prompt=False)
    assert (creds.username, creds.password) == ("bob", "pw")


def test_environment_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOA_USERNAME", "env-user")
    monkeypatch.setenv("BOA_PASSWORD", "env-pass")
    creds = load_credentials(prompt=False)
    assert (creds.username, creds.password) == ("env-user", "env-pass")


def test_prompt_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("BOA_USERNAME", raising=False)
    monkeypatch.delenv("BOA_PASSWORD", raising=False)
    monkeypatch.setattr("builtins.input", lambda prompt: " carol ")
    monkeypatch.setattr("getpass.getpass", lambda prompt: "typed")
    creds = load_credentials()
    assert (creds.username, creds.password) == ("carol", "typed")


def test_missing_credentials_without_prompt(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("BOA_USERNAME", raising=False)
    monkeypatch.delenv("BOA_PASSWORD", raising=False)
    with pytest.raises(ValueError):
        load_credentials(username="bob", prompt=False)
