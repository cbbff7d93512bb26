"""Vaultdrop configuration settings.

VaultdropSettings is the single configuration object accepted by create_app().
It is a plain dataclass (not env-coupled) so tests can inject config without
touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_STORE_BACKENDS = frozenset({"memory", "json"})
_LOG_FORMATS = frozenset({"json", "console"})


@dataclass(frozen=True, slots=True)
class VaultdropSettings:
    """Configuration for the vaultdrop download service.

    All fields have sensible defaults for local development. The ``json``
    store backend requires ``store_path``.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    # ── Record store ───────────────────────────────────────────────
    store_backend: str = "memory"
    """``memory`` (no persistence) or ``json`` (single JSON document)."""

    store_path: str = ""
    """Path of the JSON document used by the ``json`` backend."""

    files_key: str = "files"
    """Store key holding the serialized file records."""

    activities_key: str = "activities"
    """Store key holding the append-ordered activity log."""

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"
    """``json`` for JSON lines, ``console`` for human-readable output."""

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if self.store_backend not in _STORE_BACKENDS:
            errors.append(
                f"store_backend must be one of {sorted(_STORE_BACKENDS)}, got {self.store_backend!r}"
            )
        if self.store_backend == "json" and not self.store_path:
            errors.append("store_path is required for the json store backend")
        if not self.is_local and self.store_backend == "memory":
            errors.append(f"{self.environment}: memory store is only allowed in local")
        if not self.files_key or not self.activities_key:
            errors.append("files_key and activities_key must be non-empty")
        elif self.files_key == self.activities_key:
            errors.append("files_key and activities_key must differ")
        if self.log_format not in _LOG_FORMATS:
            errors.append(
                f"log_format must be one of {sorted(_LOG_FORMATS)}, got {self.log_format!r}"
            )
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> VaultdropSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct VaultdropSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            store_backend=env.get("VAULTDROP_STORE_BACKEND", "memory"),
            store_path=env.get("VAULTDROP_STORE_PATH", ""),
            files_key=env.get("VAULTDROP_FILES_KEY", "files"),
            activities_key=env.get("VAULTDROP_ACTIVITIES_KEY", "activities"),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "json"),
        )
