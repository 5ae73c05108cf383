"""
Shared error types and error-handling helpers.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, TypeVar

T = TypeVar("T")


class DispatchError(Exception):
    """Base class for errors raised by the dispatch workspace."""


class TransitionRejected(DispatchError):
    """A user action failed a pre-transition gate; nothing was written."""

    def __init__(self, chassis_no: str, reason: str) -> None:
        super().__init__(reason)
        self.chassis_no = chassis_no
        self.reason = reason


class StoreWriteError(DispatchError):
    """The realtime store rejected or failed a write."""

    def __init__(self, key: str, detail: str) -> None:
        super().__init__(detail)
        self.key = key
        self.detail = detail


class RecordNotFound(DispatchError):
    def __init__(self, chassis_no: str) -> None:
        super().__init__(f"Dispatch record not found: {chassis_no}")
        self.chassis_no = chassis_no


def _format_extra(extra: Mapping[str, Any] | None) -> str:
    parts = [f"{key}={value}" for key, value in (extra or {}).items() if value is not None]
    return " " + " ".join(parts) if parts else ""


def log_exception(
    logger: logging.Logger,
    msg: str,
    *,
    extra: Mapping[str, Any] | None = None,
    exc: BaseException | None = None,
) -> None:
    """Log ``msg`` with ``key=value`` context and a traceback.

    Without ``exc`` the exception currently being handled is used.
    """
    text = f"{msg}{_format_extra(extra)}"
    if exc is None:
        logger.exception(text)
    else:
        logger.error("%s: %s", text, exc, exc_info=exc)


def error_message(exc: BaseException | None, default: str = "Update failed") -> str:
    """Short user-facing text for a failed write."""
    if exc is None:
        return default
    if isinstance(exc, StoreWriteError) and exc.detail:
        return exc.detail
    return str(exc).strip() or default


def guarded_call(
    name: str,
    fn: Callable[[], T],
    *,
    fallback: T | None = None,
    logger: logging.Logger | None = None,
    context: Mapping[str, Any] | None = None,
) -> T | None:
    """Run ``fn``; if it raises, log under ``name`` and return ``fallback``."""
    try:
        return fn()
    except Exception as exc:
        if logger is not None:
            log_exception(logger, f"{name} failed", extra=context, exc=exc)
        return fallback
