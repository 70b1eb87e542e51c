from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("FLB_DB_PATH", "fleetlb.db")
    api_port: int = _env_int("FLB_API_PORT", 8100)
    label_key: str = os.getenv("FLB_LABEL_KEY", "deployment")
    host_ip: str = os.getenv("FLB_HOST_IP", "0.0.0.0")
    max_replicas: int = _env_int("FLB_MAX_REPLICAS", 254)

    # Packet filter
    iptables_bin: str = os.getenv("FLB_IPTABLES_BIN", "iptables")
    nat_table: str = os.getenv("FLB_NAT_TABLE", "nat")
    chain: str = os.getenv("FLB_CHAIN", "PREROUTING")

    # Print events to stdout as well as storing them.
    echo_events: bool = _env_bool("FLB_ECHO_EVENTS", False)


settings = Settings()
