from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import Depends, FastAPI, HTTPException, Query

from fleetlb import db
from fleetlb.api_models import DeployRequest, DeployResponse
from fleetlb.docker_ops import DockerRuntime, docker_available
from fleetlb.errors import DeploymentError, RuntimeClientError, ValidationError
from fleetlb.iptables import IptablesClient
from fleetlb.orchestrator import DeploymentOrchestrator
from fleetlb import settings as config


@asynccontextmanager
async def lifespan(app: FastAPI):
    db.init_db()
    db.log_event("INFO", f"FleetLB API started (chain {config.settings.nat_table}/{config.settings.chain})")
    yield


app = FastAPI(title="FleetLB", lifespan=lifespan)


def get_runtime() -> DockerRuntime:
    return DockerRuntime()


def get_orchestrator(runtime: DockerRuntime = Depends(get_runtime)) -> DeploymentOrchestrator:
    # One orchestrator per request; requests share nothing but the iptables chain.
    return DeploymentOrchestrator(runtime, IptablesClient())


@app.get("/health")
def health() -> dict:
    return {"status": "healthy", "docker": docker_available()}


@app.post("/deploy", response_model=DeployResponse)
def deploy(req: DeployRequest, orchestrator: DeploymentOrchestrator = Depends(get_orchestrator)) -> DeployResponse:
    try:
        result = orchestrator.deploy(req.to_spec())
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.to_dict())
    except DeploymentError as e:
        raise HTTPException(status_code=500, detail=e.to_dict())
    return DeployResponse.from_result(result)


@app.get("/deployments")
def list_deployments(limit: int = Query(100, ge=1, le=1000)) -> list[dict]:
    return [asdict(d) for d in db.list_deployments(limit)]


@app.get("/deployments/{deployment_id}")
def get_deployment(deployment_id: int) -> dict:
    d = db.get_deployment(deployment_id)
    if not d:
        raise HTTPException(status_code=404, detail="unknown deployment")
    out = asdict(d)
    out["replicas"] = [asdict(r) for r in db.list_replicas(deployment_id)]
    out["rules"] = [asdict(r) for r in db.list_rules(deployment_id)]
    return out


@app.get("/fleets/{name}/containers")
def fleet_containers(name: str, all: bool = False, runtime: DockerRuntime = Depends(get_runtime)) -> list[dict]:
    try:
        return [asdict(c) for c in runtime.list_fleet(name, all=all)]
    except RuntimeClientError as e:
        raise HTTPException(status_code=503, detail=str(e))


@app.get("/events")
def events(limit: int = Query(100, ge=1, le=1000)) -> list[dict]:
    return db.latest_events(limit)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.settings.api_port)
