"""Structured logging for vaultdrop.

structlog renders every entry (JSON lines in deployed environments, a
console renderer locally) through the stdlib root handler, so uvicorn and
library records share one format. Each entry carries the service name, the
deployment environment and, inside a request, the ``X-Request-ID``.

Share tokens are bearer credentials. Anything logged under a token field is
cut down to ``redact_token`` form by the last processor before rendering;
the full value only ever lives in the audit log.

Usage::

    from vaultdrop.observability import configure_logging, get_logger

    configure_logging(settings)  # once, from the app lifespan
    logger = get_logger(__name__)
    logger.info("download_allowed", token=redact_token(token), file_id="f_1")
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from ..settings import VaultdropSettings

SERVICE_NAME = "vaultdrop"
TOKEN_PREFIX_LENGTH = 8
_ELLIPSIS = "..."
_TOKEN_FIELDS = frozenset({"token", "access_token", "accessToken"})

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

_configured = False


class RedactedToken(str):
    """A token already cut down by ``redact_token``; logged as-is."""


_REDACTED = RedactedToken("<redacted>")


def redact_token(token: str | None) -> RedactedToken:
    """Cut a share token down to a correlatable prefix.

    Returns ``<prefix>...``, or ``<redacted>`` for missing tokens and tokens
    no longer than their redacted form.
    """
    if isinstance(token, RedactedToken):
        return token
    if not token or len(token) <= TOKEN_PREFIX_LENGTH + len(_ELLIPSIS):
        return _REDACTED
    return RedactedToken(f"{token[:TOKEN_PREFIX_LENGTH]}{_ELLIPSIS}")


def _add_request_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    rid = request_id_ctx.get()
    if rid is not None:
        event_dict["request_id"] = rid
    return event_dict


def _service_context(environment: str):
    def processor(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("environment", environment)
        return event_dict

    return processor


def _redact_token_fields(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    for key in _TOKEN_FIELDS & event_dict.keys():
        value = event_dict[key]
        event_dict[key] = redact_token(value if isinstance(value, str) else None)
    return event_dict


def configure_logging(
    settings: VaultdropSettings | None = None,
    *,
    force: bool = False,
) -> None:
    """Route structlog and stdlib logging through one formatter.

    Args:
        settings: Source of log level, format and environment. Defaults to
            local-development settings.
        force: Reconfigure even if logging was already set up.
    """
    global _configured
    if _configured and not force:
        return
    _configured = True

    if settings is None:
        from ..settings import VaultdropSettings

        settings = VaultdropSettings()

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _add_request_id,
        _service_context(settings.environment),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _redact_token_fields,
    ]

    if settings.log_format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    # Request lines come from RequestLoggingMiddleware with normalized paths.
    logging.getLogger("uvicorn.access").disabled = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
