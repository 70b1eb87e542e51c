from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from . import settings as config


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is an existing directory (Docker creates one when
    a bind-mounted file is missing), the DB file is placed inside it.
    """
    p = os.path.abspath(config.settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "fleetlb.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS deployments (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              name TEXT NOT NULL,
              image TEXT NOT NULL,
              host_port TEXT NOT NULL,
              port_space INTEGER NOT NULL,
              replicas INTEGER NOT NULL,
              state TEXT NOT NULL, -- provisioning|planning_installing|done|failed
              error TEXT,
              created_at TEXT NOT NULL,
              finished_at TEXT
            );

            CREATE TABLE IF NOT EXISTS replicas (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              deployment_id INTEGER NOT NULL,
              idx INTEGER NOT NULL,
              container_id TEXT NOT NULL,
              container_name TEXT NOT NULL,
              port INTEGER NOT NULL,
              ip TEXT NOT NULL,
              FOREIGN KEY(deployment_id) REFERENCES deployments(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS rules (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              deployment_id INTEGER NOT NULL,
              idx INTEGER NOT NULL,
              probability TEXT, -- NULL for the unconditional fallback
              destination TEXT NOT NULL,
              FOREIGN KEY(deployment_id) REFERENCES deployments(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              deployment TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            CREATE INDEX IF NOT EXISTS idx_replicas_deployment_id ON replicas(deployment_id);
            CREATE INDEX IF NOT EXISTS idx_rules_deployment_id ON rules(deployment_id);
            """
        )


def log_event(level: str, message: str, deployment: str | None = None) -> None:
    with connect() as conn:
        conn.execute(
            "INSERT INTO events (ts, level, deployment, message) VALUES (?, ?, ?, ?)",
            (utc_now(), level.upper(), deployment, message),
        )
    if config.settings.echo_events:
        print(f"[{level.upper()}] {deployment or '-'}: {message}")


@dataclass(frozen=True)
class DeploymentRow:
    id: int
    name: str
    image: str
    host_port: str
    port_space: int
    replicas: int
    state: str
    error: str | None
    created_at: str
    finished_at: str | None


@dataclass(frozen=True)
class ReplicaRow:
    id: int
    deployment_id: int
    idx: int
    container_id: str
    container_name: str
    port: int
    ip: str


@dataclass(frozen=True)
class RuleRow:
    id: int
    deployment_id: int
    idx: int
    probability: str | None
    destination: str


def _rows_to_dataclass(rows: Iterable[sqlite3.Row], cls: Any) -> list[Any]:
    out: list[Any] = []
    for r in rows:
        out.append(cls(**dict(r)))
    return out


def insert_deployment(name: str, image: str, host_port: str, port_space: int, replicas: int) -> int:
    with connect() as conn:
        cur = conn.execute(
            """
            INSERT INTO deployments (name, image, host_port, port_space, replicas, state, created_at)
            VALUES (?, ?, ?, ?, ?, 'provisioning', ?)
            """,
            (name, image, host_port, port_space, replicas, utc_now()),
        )
        return int(cur.lastrowid)


def set_deployment_state(deployment_id: int, state: str, error: str | None = None) -> None:
    finished = utc_now() if state in {"done", "failed"} else None
    with connect() as conn:
        conn.execute(
            "UPDATE deployments SET state=?, error=?, finished_at=? WHERE id=?",
            (state, error, finished, deployment_id),
        )


def insert_replica(deployment_id: int, idx: int, container_id: str, container_name: str, port: int, ip: str) -> None:
    with connect() as conn:
        conn.execute(
            """
            INSERT INTO replicas (deployment_id, idx, container_id, container_name, port, ip)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (deployment_id, idx, container_id, container_name, port, ip),
        )


def insert_rule(deployment_id: int, idx: int, probability: str | None, destination: str) -> None:
    with connect() as conn:
        conn.execute(
            "INSERT INTO rules (deployment_id, idx, probability, destination) VALUES (?, ?, ?, ?)",
            (deployment_id, idx, probability, destination),
        )


def list_deployments(limit: int = 100) -> list[DeploymentRow]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM deployments ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return _rows_to_dataclass(rows, DeploymentRow)


def get_deployment(deployment_id: int) -> DeploymentRow | None:
    with connect() as conn:
        row = conn.execute("SELECT * FROM deployments WHERE id=?", (deployment_id,)).fetchone()
        return DeploymentRow(**dict(row)) if row else None


def list_replicas(deployment_id: int) -> list[ReplicaRow]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM replicas WHERE deployment_id=? ORDER BY idx", (deployment_id,)).fetchall()
        return _rows_to_dataclass(rows, ReplicaRow)


def list_rules(deployment_id: int) -> list[RuleRow]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM rules WHERE deployment_id=? ORDER BY idx", (deployment_id,)).fetchall()
        return _rows_to_dataclass(rows, RuleRow)


def latest_events(limit: int = 100) -> list[dict[str, Any]]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
