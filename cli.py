from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="FleetLB CLI")
    p.add_argument("--api", default="http://localhost:8100", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_dep = sub.add_parser("deploy", help="Provision a fleet and install its redirection rules")
    s_dep.add_argument("--name", required=True)
    s_dep.add_argument("--image", required=True)
    s_dep.add_argument("--host-port", required=True, help="Port traffic arrives on")
    s_dep.add_argument("--port-space", type=int, required=True, help="First host port bound to a replica")
    s_dep.add_argument("--replicas", type=int, default=1)

    s_list = sub.add_parser("deployments", help="List past deployment requests")
    s_list.add_argument("--limit", type=int, default=20)

    s_show = sub.add_parser("show", help="Show one deployment with its replicas and rules")
    s_show.add_argument("id", type=int)

    s_ctr = sub.add_parser("containers", help="List containers labeled with a fleet name")
    s_ctr.add_argument("name")
    s_ctr.add_argument("--all", action="store_true", help="Include stopped containers")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "deploy":
        payload = {
            "host_port": args.host_port,
            "container_port_space": args.port_space,
            "image": args.image,
            "replicas": args.replicas,
            "name": args.name,
        }
        # Provisioning is sequential; large fleets take a while.
        r = requests.post(f"{base}/deploy", json=payload, timeout=300)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "deployments":
        _print(requests.get(f"{base}/deployments", params={"limit": args.limit}, timeout=10).json())
        return 0

    if args.cmd == "show":
        r = requests.get(f"{base}/deployments/{args.id}", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "containers":
        params = {"all": "true"} if args.all else {}
        r = requests.get(f"{base}/fleets/{args.name}/containers", params=params, timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "events":
        _print(requests.get(f"{base}/events", params={"limit": args.limit}, timeout=10).json())
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
