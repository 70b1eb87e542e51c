from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from .errors import ValidationError

NAME_RE = re.compile(r"^[a-z][a-z0-9\-]{0,62}$")
PORT_RE = re.compile(r"^[0-9]{1,5}$")
MAX_PORT = 65535
# iptables statistic --probability precision
PROBABILITY_DIGITS = 6


def replica_name(base: str, index: int, replicas: int) -> str:
    """``<base>-<index>`` with the index zero padded.

    Width is at least two digits, so fleets under ten replicas are named
    ``svc-00``..``svc-09``; larger fleets get enough digits to stay unique.
    """
    width = max(2, len(str(max(replicas - 1, 0))))
    return f"{base}-{index:0{width}d}"


@dataclass(frozen=True)
class DeploymentSpec:
    image: str
    host_port: str
    port_space: int
    replicas: int
    name: str

    def validate(self, max_replicas: int | None = None) -> None:
        if not self.image or not self.image.strip():
            raise ValidationError("image must not be empty.")
        if not NAME_RE.match(self.name or ""):
            raise ValidationError(
                "Invalid fleet name. Use lowercase letters/numbers and hyphen, starting with a letter (max 63 chars)."
            )
        if not PORT_RE.match(str(self.host_port)) or not 1 <= int(self.host_port) <= MAX_PORT:
            raise ValidationError(f"host_port must be a TCP port in 1..{MAX_PORT}, got {self.host_port!r}.")
        if not 1 <= int(self.port_space) <= MAX_PORT:
            raise ValidationError(f"container_port_space must be in 1..{MAX_PORT}, got {self.port_space}.")
        if self.replicas < 0:
            raise ValidationError(f"replicas must be >= 0, got {self.replicas}.")
        if max_replicas is not None and self.replicas > max_replicas:
            raise ValidationError(f"replicas must be <= {max_replicas}, got {self.replicas}.")
        if self.replicas and self.port_space + self.replicas - 1 > MAX_PORT:
            raise ValidationError(
                f"container_port_space {self.port_space} + {self.replicas} replicas runs past port {MAX_PORT}."
            )

    def replica_port(self, index: int) -> int:
        return self.port_space + index

    def replica_name(self, index: int) -> str:
        return replica_name(self.name, index, self.replicas)


@dataclass(frozen=True)
class ReplicaDescriptor:
    index: int
    container_id: str
    name: str
    port: int
    ip: str

    @property
    def destination(self) -> str:
        return f"{self.ip}:{self.port}"


FleetResult = list[ReplicaDescriptor]


@dataclass(frozen=True)
class RedirectionRule:
    destination: str
    probability: float | None = None  # None: unconditional fallback

    @property
    def conditional(self) -> bool:
        return self.probability is not None

    def probability_arg(self) -> str | None:
        if self.probability is None:
            return None
        return f"{self.probability:.{PROBABILITY_DIGITS}f}"


class DeploymentState(str, Enum):
    IDLE = "idle"
    PROVISIONING = "provisioning"
    PLANNING_INSTALLING = "planning_installing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class DeploymentResult:
    spec: DeploymentSpec
    state: DeploymentState
    deployment_id: int | None = None
    replicas: FleetResult = field(default_factory=list)
    rules: list[RedirectionRule] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Containers started, {self.spec.name}!"
