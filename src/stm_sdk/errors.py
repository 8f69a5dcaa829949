"""
Error taxonomy, caller-facing error object, and request outcomes.

Every failure below the local-validation layer is turned into a
:class:`ServiceError` outcome by the request processor; only
:class:`ValidationError` is ever raised to the caller, and only when no
callback was supplied to receive it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

import requests


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class ErrorCategory:
    """
    Error category constants and classification logic for request failures.

    Categories drive the severity reported to callers: an auth-not-ready
    failure is minor (the call was never attempted), everything else that
    reaches the remote side or the transport is major.
    """

    VALIDATION = "validation"
    AUTH_NOT_READY = "auth_not_ready"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    INVALID_RESPONSE = "invalid_response"
    OTHER = "other"

    MINOR: frozenset[str] = frozenset({VALIDATION, AUTH_NOT_READY})

    @staticmethod
    def categorize(error: Exception) -> tuple[str, str]:
        """
        Classify an exception raised while building, sending, or parsing a
        request into a category and message pair.

        Args:
            error: Exception caught by the request processor.

        Returns:
            Tuple of (category: str, message: str).
        """
        if isinstance(error, ValidationError):
            return ErrorCategory.VALIDATION, str(error)

        if isinstance(error, requests.RequestException):
            return ErrorCategory.TRANSPORT, str(error)

        # JSONDecodeError subclasses ValueError, so it must be checked first
        if isinstance(error, (json.JSONDecodeError, KeyError, TypeError)):
            return ErrorCategory.INVALID_RESPONSE, str(error)

        if isinstance(error, (OSError, ValueError)):
            return ErrorCategory.TRANSPORT, str(error)

        return ErrorCategory.OTHER, str(error)


class ValidationError(ValueError):
    """A required argument was missing or invalid; detected before any I/O."""


# ---------------------------------------------------------------------------
# Caller-facing error
# ---------------------------------------------------------------------------

SEVERITY_MINOR = "minor"
SEVERITY_MAJOR = "major"


@dataclass(frozen=True)
class StmError:
    """
    Error delivered to a callback's ``on_error``.

    Attributes:
        message: Human-readable description.
        fatal: ``True`` if the session itself is unusable (e.g. no user).
        severity: ``'minor'`` or ``'major'``.
    """

    message: str
    fatal: bool = False
    severity: str = SEVERITY_MAJOR


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Success:
    """The call succeeded; ``value`` is the adapted result (``None`` for void)."""

    value: Any = None


@dataclass(frozen=True)
class Empty:
    """The resource is legitimately absent (HTTP 404)."""


@dataclass(frozen=True)
class ServiceError:
    """The call failed locally, in transport, or at the protocol level."""

    message: str
    category: str = ErrorCategory.OTHER

    def to_stm_error(self) -> StmError:
        severity = (
            SEVERITY_MINOR if self.category in ErrorCategory.MINOR else SEVERITY_MAJOR
        )
        return StmError(self.message, fatal=False, severity=severity)


Outcome = Union[Success, Empty, ServiceError]
