import sqlite3

import pytest

from conftest import FakePacketFilter, FakeRuntime
from fleetlb import db, orchestrator as orchestrator_mod
from fleetlb.errors import InstallationError, InternalError, ProvisioningError, ValidationError
from fleetlb.models import DeploymentSpec, DeploymentState
from fleetlb.orchestrator import DeploymentOrchestrator

S = DeploymentState


def _spec(**kw):
    base = dict(image="demo", host_port="8080", port_space=9000, replicas=3, name="svc")
    base.update(kw)
    return DeploymentSpec(**base)


def test_three_replica_deployment_completes(runtime, packet_filter):
    orch = DeploymentOrchestrator(runtime, packet_filter)
    result = orch.deploy(_spec())

    assert result.state is S.DONE
    assert orch.state is S.DONE
    assert orch.history == [S.IDLE, S.PROVISIONING, S.PLANNING_INSTALLING, S.DONE]
    assert [r.name for r in result.replicas] == ["svc-00", "svc-01", "svc-02"]
    assert [r.port for r in result.replicas] == [9000, 9001, 9002]
    assert len(packet_filter.rules) == 3
    assert result.message == "Containers started, svc!"

    # install order == creation order == index order
    assert [r["destination"] for r in packet_filter.rules] == [r.destination for r in result.replicas]
    assert [r["probability"] for r in packet_filter.rules] == ["0.333333", "0.500000", None]
    assert all(r["match_port"] == "8080" for r in packet_filter.rules)


@pytest.mark.parametrize("replicas", [0, 1])
def test_small_fleets_skip_planning(replicas, runtime, packet_filter, monkeypatch):
    def boom(*a, **kw):
        raise AssertionError("planner must not run")

    monkeypatch.setattr(orchestrator_mod, "plan_rules", boom)
    orch = DeploymentOrchestrator(runtime, packet_filter)
    result = orch.deploy(_spec(replicas=replicas))

    assert result.state is S.DONE
    assert orch.history == [S.IDLE, S.PROVISIONING, S.DONE]
    assert len(result.replicas) == replicas
    assert result.rules == []
    assert packet_filter.rules == []


def test_second_start_failure_stops_before_rules(packet_filter):
    runtime = FakeRuntime(fail={("start", "svc-01"): "driver failed programming external connectivity"})
    orch = DeploymentOrchestrator(runtime, packet_filter)

    with pytest.raises(ProvisioningError) as exc:
        orch.deploy(_spec())

    assert exc.value.index == 1
    assert exc.value.phase == "start"
    assert orch.state is S.FAILED
    assert orch.history == [S.IDLE, S.PROVISIONING, S.FAILED]
    assert packet_filter.attempts == 0
    # Known gap: the first replica stays created and started.
    assert runtime.names("running") == ["svc-00"]


def test_installation_failure_leaves_partial_chain(runtime):
    pf = FakePacketFilter(fail_at=2)
    orch = DeploymentOrchestrator(runtime, pf)

    with pytest.raises(InstallationError) as exc:
        orch.deploy(_spec())

    assert exc.value.index == 2
    assert orch.state is S.FAILED
    assert orch.history[-2:] == [S.PLANNING_INSTALLING, S.FAILED]
    assert len(pf.rules) == 2
    assert runtime.names("running") == ["svc-00", "svc-01", "svc-02"]

    dep = db.list_deployments()[0]
    assert dep.state == "failed"
    assert len(db.list_rules(dep.id)) == 2


def test_validation_failure_never_provisions(runtime, packet_filter):
    orch = DeploymentOrchestrator(runtime, packet_filter)
    with pytest.raises(ValidationError):
        orch.deploy(_spec(host_port="80a"))
    assert orch.history == [S.IDLE, S.FAILED]
    assert runtime.calls == []
    assert db.list_deployments() == []


def test_redeploy_is_not_idempotent(runtime, packet_filter):
    orch = DeploymentOrchestrator(runtime, packet_filter)
    first = orch.deploy(_spec(replicas=2))
    second = orch.deploy(_spec(replicas=2))

    # A second fleet is created and a second set of rules appended; nothing is replaced.
    assert len(runtime.containers) == 4
    assert runtime.names() == ["svc-00", "svc-01", "svc-00", "svc-01"]
    assert len(packet_filter.rules) == 4
    assert {r.container_id for r in first.replicas}.isdisjoint(r.container_id for r in second.replicas)
    assert first.deployment_id != second.deployment_id


def test_history_is_recorded(runtime, packet_filter):
    result = DeploymentOrchestrator(runtime, packet_filter).deploy(_spec(replicas=2))

    dep = db.get_deployment(result.deployment_id)
    assert dep.state == "done"
    assert dep.finished_at is not None
    assert [r.container_name for r in db.list_replicas(dep.id)] == ["svc-00", "svc-01"]
    assert [(r.probability, r.destination) for r in db.list_rules(dep.id)] == [
        ("0.500000", result.replicas[0].destination),
        (None, result.replicas[1].destination),
    ]
    assert any(e["message"] == "Containers started, svc!" for e in db.latest_events())


def test_failures_are_logged(packet_filter):
    runtime = FakeRuntime(fail={("create", "svc-00"): "pull access denied"})
    with pytest.raises(ProvisioningError):
        DeploymentOrchestrator(runtime, packet_filter).deploy(_spec())

    errors = [e for e in db.latest_events() if e["level"] == "ERROR"]
    assert errors and "pull access denied" in errors[0]["message"]
    assert errors[0]["deployment"] == "svc"


def test_store_failure_mid_provisioning_still_fails_typed(runtime, packet_filter, monkeypatch):
    real_log_event = db.log_event

    def locked(level, message, deployment=None):
        if message.startswith("Created container"):
            raise sqlite3.OperationalError("database is locked")
        real_log_event(level, message, deployment=deployment)

    monkeypatch.setattr(db, "log_event", locked)
    orch = DeploymentOrchestrator(runtime, packet_filter)

    with pytest.raises(InternalError) as exc:
        orch.deploy(_spec())

    assert exc.value.phase == "provisioning"
    assert "database is locked" in exc.value.message
    assert len(exc.value.left_behind) == 1
    assert orch.state is S.FAILED
    assert db.list_deployments()[0].state == "failed"
    assert [e for e in db.latest_events() if e["level"] == "ERROR"]


def test_failure_that_cannot_be_recorded_is_still_raised(runtime, packet_filter, monkeypatch):
    def locked(level, message, deployment=None):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(db, "log_event", locked)
    orch = DeploymentOrchestrator(runtime, packet_filter)

    with pytest.raises(InternalError) as exc:
        orch.deploy(_spec())

    assert orch.state is S.FAILED
    assert "database is locked" in exc.value.to_dict()["record_error"]
    assert db.list_deployments()[0].state == "failed"
