from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import docker
from docker.errors import DockerException
from requests.exceptions import RequestException

from .errors import RuntimeClientError
from . import settings as config


@dataclass(frozen=True)
class ContainerRef:
    id: str
    name: str
    status: str
    labels: dict[str, str]


def _client() -> docker.DockerClient:
    return docker.from_env()


def docker_available() -> bool:
    try:
        c = _client()
        c.ping()
        return True
    except (DockerException, RequestException):
        return False


def container_ip(attrs: dict[str, Any]) -> str:
    """IP address from ``docker inspect`` output.

    Uses the default bridge address, falling back to the first attached
    network when the container only lives on a user-defined one.
    """
    net = attrs.get("NetworkSettings") or {}
    ip = net.get("IPAddress") or ""
    if ip:
        return ip
    for cfg in (net.get("Networks") or {}).values():
        if cfg and cfg.get("IPAddress"):
            return cfg["IPAddress"]
    return ""


class DockerRuntime:
    """Workload runtime client backed by the Docker Engine API.

    Only the three calls the provisioner needs (create, start, inspect) plus a
    label lookup for inventory. Every SDK error becomes ``RuntimeClientError``.
    """

    def __init__(self, client: docker.DockerClient | None = None, host_ip: str | None = None):
        self._client = client
        self.host_ip = host_ip if host_ip is not None else config.settings.host_ip

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = _client()
            except (DockerException, RequestException) as e:
                raise RuntimeClientError(f"Docker is not available: {e}") from e
        return self._client

    def create(self, image: str, exposed_port: str, host_port: int, labels: dict[str, str], name: str) -> str:
        try:
            container = self.client.containers.create(
                image,
                name=name,
                labels=labels,
                ports={f"{exposed_port}/tcp": (self.host_ip, int(host_port))},
            )
        except (DockerException, RequestException) as e:
            raise RuntimeClientError(f"create {name} from {image}: {e}") from e
        return container.id

    def start(self, container_id: str) -> None:
        try:
            self.client.containers.get(container_id).start()
        except (DockerException, RequestException) as e:
            raise RuntimeClientError(f"start {container_id[:12]}: {e}") from e

    def inspect(self, container_id: str) -> str:
        try:
            container = self.client.containers.get(container_id)
            container.reload()
        except (DockerException, RequestException) as e:
            raise RuntimeClientError(f"inspect {container_id[:12]}: {e}") from e
        ip = container_ip(container.attrs)
        if not ip:
            raise RuntimeClientError(f"inspect {container_id[:12]}: container has no IP address")
        return ip

    def list_fleet(self, name: str, label_key: str | None = None, all: bool = False) -> list[ContainerRef]:
        """Containers labeled as members of fleet ``name``."""
        key = label_key or config.settings.label_key
        try:
            containers = self.client.containers.list(all=all, filters={"label": [f"{key}={name}"]})
        except (DockerException, RequestException) as e:
            raise RuntimeClientError(f"list {key}={name}: {e}") from e
        return [ContainerRef(id=x.id, name=x.name, status=x.status, labels=dict(x.labels or {})) for x in containers]
