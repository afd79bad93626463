"""Error taxonomy for role and session operations."""

from typing import Any


class RoleSwitchError(Exception):
    """Base class for errors surfaced to the caller of a core operation."""

    code = "RoleSwitchError"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class RoleNotFoundError(RoleSwitchError):
    """Referenced role id does not exist in the registry."""

    code = "RoleNotFound"
    status_code = 404

    def __init__(self, role_id: str) -> None:
        super().__init__(f"Role with ID {role_id} not found")
        self.role_id = role_id


class SessionAlreadyActiveError(RoleSwitchError):
    """Attempted start while a session is active."""

    code = "SessionAlreadyActive"
    status_code = 409

    def __init__(self) -> None:
        super().__init__("Cannot start session: another session is already active")


class NoActiveSessionError(RoleSwitchError):
    """Operation requires an active session."""

    code = "NoActiveSession"
    status_code = 409

    def __init__(self, message: str = "No active session") -> None:
        super().__init__(message)


class SessionLockedError(RoleSwitchError):
    """Attempted end/switch while the minimum-duration lock holds."""

    code = "SessionLocked"
    status_code = 423

    def __init__(self, message: str = "Session is locked") -> None:
        super().__init__(message)


class TransitionInProgressError(RoleSwitchError):
    """Attempted start/switch while a transition window is open."""

    code = "TransitionInProgress"
    status_code = 409

    def __init__(self, message: str = "A role transition is already in progress") -> None:
        super().__init__(message)


class NoTransitionActiveError(RoleSwitchError):
    """Attempted cancel with no transition pending."""

    code = "NoTransitionActive"
    status_code = 409

    def __init__(self) -> None:
        super().__init__("No transition to cancel")


class SameRoleError(RoleSwitchError):
    """Switch target equals the current role."""

    code = "SameRole"
    status_code = 400

    def __init__(self) -> None:
        super().__init__("Cannot switch to the same role")


class ValidationError(RoleSwitchError):
    """Input failed validation; carries every failed constraint."""

    code = "ValidationError"
    status_code = 422

    def __init__(self, errors: list[str], subject: str = "role data") -> None:
        super().__init__(f"Invalid {subject}: {', '.join(errors)}")
        self.errors = list(errors)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class StorageError(RoleSwitchError):
    """A persistence call failed."""

    code = "StorageError"
    status_code = 503

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        message = f"Storage operation '{operation}' failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.operation = operation
        self.cause = cause
