"""
Exception hierarchy for the telemetry engine.

None of these are fatal: the engine recovers where they occur and reports
them through the alert backlog.
"""

from __future__ import annotations

from enum import Enum
from typing import Sequence


class MycosyncError(Exception):
    """Base exception for all engine errors"""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RemoteUnavailable(MycosyncError):
    """Remote store missing, unreachable or disconnected"""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(f"Remote unavailable: {message}")


class AuthenticationFailed(MycosyncError):
    """Credential exchange rejected by the identity provider"""

    def __init__(self, message: str, code: str | None = None) -> None:
        self.code = code
        super().__init__(f"Authentication failed: {message}")


class ValidationFailed(MycosyncError):
    """Configuration rejected; carries every violated rule"""

    def __init__(self, violations: Sequence[str]) -> None:
        self.violations = list(violations)
        super().__init__("Validation failed: " + "; ".join(self.violations))


class DenialReason(str, Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    WRONG_MODE = "wrong_mode"


class AuthorizationDenied(MycosyncError):
    """Command rejected by the control authority"""

    def __init__(self, reason: DenialReason, action: str) -> None:
        self.reason = reason
        self.action = action
        super().__init__(f"{action} denied: {reason.value}")


class PersistenceFailed(MycosyncError):
    """A read or write against the remote store failed"""

    def __init__(self, message: str, operation: str | None = None, path: str | None = None) -> None:
        self.operation = operation
        self.path = path
        super().__init__(f"Persistence failed: {message}")
