"""
Service configuration, loaded once at startup.
"""

import os
from dataclasses import dataclass, replace
from typing import Mapping


DEFAULT_PORT = 8080
MAX_REQUEST_BYTES = 20 * 1024 * 1024  # 20MB
MAX_CONNECTIONS = 200
REQUEST_TIMEOUT = 30.0  # seconds


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    request_timeout: float = REQUEST_TIMEOUT
    max_request_bytes: int = MAX_REQUEST_BYTES
    max_connections: int = MAX_CONNECTIONS
    jpeg_quality: int = 90
    # None -> encode responses in memory
    staging_dir: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServerConfig":
        """Port from PORT, staging directory from FILMNEG_STAGING_DIR."""
        if environ is None:
            environ = os.environ
        return cls(
            port=_env_int(environ, "PORT", DEFAULT_PORT),
            staging_dir=environ.get("FILMNEG_STAGING_DIR") or None,
        )

    def with_overrides(self, **changes) -> "ServerConfig":
        """Copy with the non-None values of `changes` applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
