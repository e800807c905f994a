"""Project-specific exception types."""

from __future__ import annotations


class LimaboxError(RuntimeError):
    """Base error for domain-level limabox failures."""


class DependencyMissingError(LimaboxError):
    """Raised when a required host command is not installed."""


class NotRunningError(LimaboxError):
    """Raised when an operation needs a live VM but none is running."""

    def __init__(self, name: str, hint: str = 'limabox start'):
        self.name = name
        self.hint = hint
        super().__init__(f'VM {name!r} is not running. Run: {hint}')


class ConfigInvalidError(LimaboxError):
    """Raised for invalid configuration values, before any state change."""


class ProvisioningFailedError(LimaboxError):
    """Raised when a provisioning step's external command fails."""

    def __init__(self, step: str, detail: str = ''):
        self.step = step
        self.detail = detail
        msg = f'Provisioning step failed: {step}'
        if detail:
            msg += f' ({detail})'
        super().__init__(msg)


class HostPermissionError(ProvisioningFailedError):
    """Raised when a host-side privileged step (socket link) is refused."""


class UserDeclinedError(LimaboxError):
    """Raised when a confirmation prompt is answered negatively."""
