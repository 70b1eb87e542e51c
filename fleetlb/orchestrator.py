from __future__ import annotations

import sqlite3

from . import db
from . import settings as config
from .errors import DeploymentError, InstallationError, InternalError
from .installer import PacketFilter, RuleInstaller
from .models import DeploymentResult, DeploymentSpec, DeploymentState, RedirectionRule
from .planner import plan_rules
from .provisioner import FleetProvisioner, WorkloadRuntime


class DeploymentOrchestrator:
    """Runs one deployment request end to end.

    idle -> provisioning -> (planning_installing | done) -> done | failed

    Fleets of fewer than two replicas skip the rule stage: a single
    destination needs no split, so no rule is installed at all. Failures are
    terminal and re-raised to the caller; nothing is retried or rolled back.
    Calling ``deploy`` twice with the same spec creates a second fleet and
    appends a second set of rules.
    """

    def __init__(self, runtime: WorkloadRuntime, packet_filter: PacketFilter, max_replicas: int | None = None):
        self.provisioner = FleetProvisioner(runtime)
        self.installer = RuleInstaller(packet_filter)
        self.max_replicas = max_replicas if max_replicas is not None else config.settings.max_replicas
        self.state = DeploymentState.IDLE
        self.history: list[DeploymentState] = [DeploymentState.IDLE]

    def _transition(self, state: DeploymentState, deployment_id: int | None, error: str | None = None) -> None:
        self.state = state
        self.history.append(state)
        if deployment_id is not None:
            db.set_deployment_state(deployment_id, state.value, error)

    def _record_rules(self, deployment_id: int, rules: list[RedirectionRule]) -> None:
        for i, rule in enumerate(rules):
            db.insert_rule(deployment_id, i, rule.probability_arg(), rule.destination)

    def deploy(self, spec: DeploymentSpec) -> DeploymentResult:
        self.state = DeploymentState.IDLE
        self.history = [DeploymentState.IDLE]
        self.provisioner.reset()
        deployment_id: int | None = None
        try:
            spec.validate(self.max_replicas)
            deployment_id = db.insert_deployment(spec.name, spec.image, spec.host_port, spec.port_space, spec.replicas)
            self._transition(DeploymentState.PROVISIONING, deployment_id)
            db.log_event(
                "INFO",
                f"Deploying {spec.replicas} replica(s) of {spec.image} behind port {spec.host_port}",
                deployment=spec.name,
            )
            result = DeploymentResult(spec=spec, state=self.state, deployment_id=deployment_id)

            result.replicas = self.provisioner.provision(spec)
            for r in result.replicas:
                db.insert_replica(deployment_id, r.index, r.container_id, r.name, r.port, r.ip)

            if spec.replicas > 1:
                self._transition(DeploymentState.PLANNING_INSTALLING, deployment_id)
                result.rules = plan_rules(result.replicas)
                try:
                    self.installer.install(result.rules, spec.host_port)
                except InstallationError as e:
                    self._record_rules(deployment_id, result.rules[: e.installed])
                    raise
                self._record_rules(deployment_id, result.rules)
                db.log_event("INFO", f"Installed {len(result.rules)} redirection rules", deployment=spec.name)

            self._transition(DeploymentState.DONE, deployment_id)
            result.state = self.state
            db.log_event("INFO", result.message, deployment=spec.name)
            return result
        except DeploymentError as e:
            self._fail(e, deployment_id, spec.name)
            raise
        except Exception as e:
            err = InternalError(f"{type(e).__name__}: {e}", phase=self.state.value, left_behind=self.provisioner.created)
            self._fail(err, deployment_id, spec.name)
            raise err from e

    def _fail(self, err: DeploymentError, deployment_id: int | None, name: str) -> None:
        try:
            self._transition(DeploymentState.FAILED, deployment_id, str(err))
            db.log_event("ERROR", f"Deployment failed: {err}", deployment=name)
        except sqlite3.Error as e:
            # State is already FAILED in memory; the caller still gets err.
            err.record_error = f"{type(e).__name__}: {e}"
