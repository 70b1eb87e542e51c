from __future__ import annotations

from typing import Any, Callable, Protocol

from . import db
from . import settings as config
from .errors import ProvisioningError, RuntimeClientError
from .models import DeploymentSpec, FleetResult, ReplicaDescriptor


class WorkloadRuntime(Protocol):
    def create(self, image: str, exposed_port: str, host_port: int, labels: dict[str, str], name: str) -> str: ...

    def start(self, container_id: str) -> None: ...

    def inspect(self, container_id: str) -> str: ...


class FleetProvisioner:
    """Creates, starts and inspects the replicas of one fleet, one at a time.

    All replicas are created first, then each is started and inspected in
    creation order. The first failure aborts the request with a
    ``ProvisioningError`` naming the replica index and the phase. Already
    created or started containers are left as they are.
    """

    def __init__(self, runtime: WorkloadRuntime, label_key: str | None = None):
        self.runtime = runtime
        self.label_key = label_key or config.settings.label_key
        self._created: list[str] = []

    def _call(self, phase: str, index: int, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except RuntimeClientError as e:
            raise ProvisioningError(str(e), index=index, phase=phase, left_behind=self._created) from e
        except Exception as e:
            # Runtime clients other than DockerRuntime may leak their transport errors.
            raise ProvisioningError(
                f"{type(e).__name__}: {e}", index=index, phase=phase, left_behind=self._created
            ) from e

    def reset(self) -> None:
        self._created = []

    def provision(self, spec: DeploymentSpec) -> FleetResult:
        self.reset()
        if spec.replicas <= 0:
            return []

        labels = {self.label_key: spec.name}
        names: list[str] = []

        for i in range(spec.replicas):
            name = spec.replica_name(i)
            cid = self._call("create", i, self.runtime.create, spec.image, spec.host_port, spec.replica_port(i), dict(labels), name)
            self._created.append(cid)
            names.append(name)
            db.log_event("INFO", f"Created container {name} ({cid[:12]}) from image {spec.image}", deployment=spec.name)

        fleet: FleetResult = []
        for i, (cid, name) in enumerate(zip(self._created, names)):
            self._call("start", i, self.runtime.start, cid)
            db.log_event("INFO", f"Container with id {cid[:12]} started", deployment=spec.name)

            ip = self._call("inspect", i, self.runtime.inspect, cid)
            fleet.append(ReplicaDescriptor(index=i, container_id=cid, name=name, port=spec.replica_port(i), ip=ip))

        return fleet

    @property
    def created(self) -> list[str]:
        """Ids created by the last ``provision`` call, in index order."""
        return list(self._created)
