from __future__ import annotations

"""Configuration parsing for boaapi client.conf files.

Only the `[client]` section is read; unknown keys are ignored.
"""

import os
import re
from dataclasses import dataclass

BOA_API_ENDPOINT = "https://boa.cs.iastate.edu/boa/?q=boa/api"
BOAC_API_ENDPOINT = "https://boa.cs.iastate.edu/boac/?q=boa/api"

DEFAULT_CONFIG_PATH = os.path.join(os.path.expanduser("~"), ".config", "boaapi", "client.conf")


@dataclass
class BoaClientConfig:
    """Endpoint, retry, and polling settings for a `BoaClient`."""

    endpoint: str = BOA_API_ENDPOINT
    max_retries: int = 5
    retry_backoff: float = 0.1
    timeout: float = 30.0
    poll_interval: float = 2.0
    output_size_limit: int = 64 * 1024
    verify_ssl: bool = True


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _strip_comments(record: str) -> str:
    """Drop inline comments while preserving leading assignment content."""
    hash_pos = record.find("#")
    if hash_pos == -1:
        return record
    return record[:hash_pos]


def load_boa_client_config(path: str | None = DEFAULT_CONFIG_PATH) -> BoaClientConfig:
    """
    Parse client configuration from disk, then apply environment overrides.

    A missing file yields the defaults. `BOA_API_ENDPOINT` and
    `BOA_API_TIMEOUT` override the file.
    """

    cfg = BoaClientConfig()
    if path and os.path.exists(path):
        section_re = re.compile(r"^\s*\[([^\]]+)\]\s*$")
        kv_re = re.compile(r"^\s*(\w+)\s*=\s*(.*?)\s*$")
        in_client_section = False

        with open(path, "r", encoding="utf-8") as fp:
            for raw_record in fp:
                record = _strip_comments(raw_record).strip()
                if not record:
                    continue

                section_match = section_re.match(record)
                if section_match:
                    in_client_section = section_match.group(1) == "client"
                    continue

                if not in_client_section:
                    continue

                kv_match = kv_re.match(record)
                if not kv_match:
                    continue

                key, value = kv_match.group(1), kv_match.group(2)
                if key == "endpoint":
                    cfg.endpoint = value
                elif key == "maxRetries":
                    cfg.max_retries = int(value)
                elif key == "retryBackoff":
                    cfg.retry_backoff = float(value)
                elif key == "timeout":
                    cfg.timeout = float(value)
                elif key == "pollInterval":
                    cfg.poll_interval = float(value)
                elif key == "outputSizeLimit":
                    cfg.output_size_limit = int(value)
                elif key == "verifySSL":
                    cfg.verify_ssl = _parse_bool(value)

    endpoint = os.environ.get("BOA_API_ENDPOINT")
    if endpoint:
        cfg.endpoint = endpoint
    timeout = os.environ.get("BOA_API_TIMEOUT")
    if timeout:
        cfg.timeout = float(timeout)

    return cfg
