from __future__ import annotations

from pydantic import BaseModel, Field

from .models import DeploymentResult, DeploymentSpec


class DeployRequest(BaseModel):
    host_port: str | int = Field(..., description="Host TCP port traffic arrives on, e.g. \"8080\"")
    container_port_space: int = Field(..., ge=1, le=65535, description="First host port bound to a replica")
    image: str = Field(..., description="Docker image (name:tag)")
    replicas: int = Field(..., ge=0, description="Number of identical replicas")
    name: str = Field(..., description="Fleet name (dns-safe); also the label value")

    def to_spec(self) -> DeploymentSpec:
        return DeploymentSpec(
            image=self.image,
            host_port=str(self.host_port),
            port_space=self.container_port_space,
            replicas=self.replicas,
            name=self.name,
        )


class ReplicaOut(BaseModel):
    index: int
    container_id: str
    name: str
    port: int
    ip: str


class RuleOut(BaseModel):
    destination: str
    probability: str | None = None


class DeployResponse(BaseModel):
    message: str
    deployment_id: int | None = None
    state: str
    replicas: list[ReplicaOut] = []
    rules: list[RuleOut] = []

    @classmethod
    def from_result(cls, result: DeploymentResult) -> "DeployResponse":
        return cls(
            message=result.message,
            deployment_id=result.deployment_id,
            state=result.state.value,
            replicas=[
                ReplicaOut(index=r.index, container_id=r.container_id, name=r.name, port=r.port, ip=r.ip)
                for r in result.replicas
            ],
            rules=[RuleOut(destination=x.destination, probability=x.probability_arg()) for x in result.rules],
        )
