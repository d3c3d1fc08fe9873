from __future__ import annotations


class SwitchNotFoundError(ValueError):
    """Raised when a referenced user does not exist."""


class InvalidBatchTargetError(ValueError):
    """Raised when a batch is missing or inactive and cannot be assigned."""


class SwitchForbiddenError(PermissionError):
    pass


class SafeConflictError(ValueError):
    pass
