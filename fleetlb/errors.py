from __future__ import annotations

from typing import Any


class RuntimeClientError(Exception):
    """The container runtime rejected a create/start/inspect call."""


class PacketFilterError(Exception):
    """The packet filter binary failed to append a rule."""


class DeploymentError(Exception):
    """Base class for every failure that ends a deployment request.

    None of these are retried; the orchestrator marks the request failed and
    re-raises so the caller sees the phase, the index and the cause.
    """

    phase = "deploy"

    def __init__(self, message: str, index: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.index = index
        # Set when the failure itself could not be written to the history store.
        self.record_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "error": type(self).__name__,
            "phase": self.phase,
            "index": self.index,
            "message": self.message,
        }
        if self.record_error:
            out["record_error"] = self.record_error
        return out

    def __str__(self) -> str:
        if self.index is None:
            return f"{self.phase}: {self.message}"
        return f"{self.phase}[{self.index}]: {self.message}"


class ValidationError(DeploymentError):
    phase = "validate"


class ProvisioningError(DeploymentError):
    """Create, start or inspect failed for one replica.

    Nothing is cleaned up: ``left_behind`` lists the ids of every instance
    created before the failure so external tooling can remove them.
    """

    def __init__(self, message: str, index: int, phase: str, left_behind: list[str] | None = None) -> None:
        super().__init__(message, index=index)
        self.phase = phase  # create|start|inspect
        self.left_behind = list(left_behind or [])

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["left_behind"] = list(self.left_behind)
        return out


class PlanningError(DeploymentError):
    phase = "plan"


class InstallationError(DeploymentError):
    """Appending rule ``index`` failed; rules ``0..index-1`` stay in the chain."""

    phase = "install"

    def __init__(self, message: str, index: int, installed: int) -> None:
        super().__init__(message, index=index)
        self.installed = installed

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["installed"] = self.installed
        return out


class InternalError(DeploymentError):
    """Anything untyped that escaped while the request was in ``phase``.

    Typical causes are the history store being locked or a runtime client
    leaking a transport error. ``left_behind`` is filled as for
    ``ProvisioningError``.
    """

    def __init__(self, message: str, phase: str, left_behind: list[str] | None = None) -> None:
        super().__init__(message)
        self.phase = phase
        self.left_behind = list(left_behind or [])

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["left_behind"] = list(self.left_behind)
        return out
