from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _load_agents(path: str | None) -> list[dict]:
    if not path:
        return []
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    return data["agents"] if isinstance(data, dict) else data


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Docker Elastic Agents CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("containers", help="List tracked agent containers")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)
    s_ev.add_argument("--level", default=None, help="INFO, WARN or ERROR")

    s_new = sub.add_parser("create", help="Start an agent container")
    s_new.add_argument("--image", required=True)
    s_new.add_argument("--auto-register-key", required=True)
    s_new.add_argument("--environment", default=None, help="Server environment name")
    s_new.add_argument("--command", action="append", default=[], help="Command part (repeatable)")
    s_new.add_argument("--env", action="append", default=[], help="KEY=VALUE passed to the agent (repeatable)")

    s_term = sub.add_parser("terminate", help="Terminate an agent container")
    s_term.add_argument("identity")

    s_ping = sub.add_parser("ping", help="Run the periodic housekeeping once")
    s_ping.add_argument("--agents", default=None, help="JSON file with the agents the server knows")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "containers":
        _print(requests.get(f"{base}/containers", timeout=10).json())
        return 0

    if args.cmd == "events":
        params = {"limit": args.limit}
        if args.level:
            params["level"] = args.level
        _print(requests.get(f"{base}/events", params=params, timeout=10).json())
        return 0

    if args.cmd == "create":
        properties = {"Image": args.image}
        if args.command:
            properties["Command"] = "\n".join(args.command)
        if args.env:
            properties["Environment"] = "\n".join(args.env)
        payload = {
            "auto_register_key": args.auto_register_key,
            "environment": args.environment,
            "properties": properties,
        }
        r = requests.post(f"{base}/agents", json=payload, timeout=60)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "terminate":
        r = requests.delete(f"{base}/agents/{args.identity}", timeout=60)
        if not r.ok:
            _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "ping":
        r = requests.post(f"{base}/ping", json={"agents": _load_agents(args.agents)}, timeout=120)
        _print(r.json())
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
