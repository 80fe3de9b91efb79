#!/usr/bin/env python3
"""Submit a batch file to the orchestration API and poll until it finishes.

The file holds {"members": [...], "options": {...}} or a bare list of members.
"""
import argparse
import json
import os
import sys
import time
from pathlib import Path

import httpx

BASE_URL = os.environ.get("KASAMA_BASE_URL", "http://127.0.0.1:8000")


def load_batch(path: Path) -> dict:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, list):
        data = {"members": data}
    return data


def print_results(status: dict) -> None:
    for r in status.get("results") or []:
        mark = {"succeeded": "ok", "failed": "FAIL"}.get(r["status"], r["status"])
        flags = []
        if r.get("cache_hit"):
            flags.append("cache")
        if r.get("fallback_used"):
            flags.append("fallback")
        extra = f" [{', '.join(flags)}]" if flags else ""
        print(f"  #{r['index']} {r['agent_type']}.{r.get('operation') or '-'}: {mark}{extra}", flush=True)
        if r.get("error"):
            print(f"      {r['error'].get('code')}: {r['error'].get('message')}", flush=True)


def main():
    parser = argparse.ArgumentParser(description="Submit a batch and wait for its results.")
    parser.add_argument("file", type=Path, help="JSON batch file")
    parser.add_argument("--url", default=BASE_URL, help="Orchestration API base URL")
    parser.add_argument("--sequential", action="store_true", help="Run members one at a time")
    parser.add_argument("--fail-fast", action="store_true", help="Skip remaining members after the first failure")
    parser.add_argument("--concurrency", type=int, help="Members run at once (capped by the server)")
    parser.add_argument("--poll", type=float, default=1.0, help="Seconds between status checks")
    parser.add_argument("--json", action="store_true", help="Print the final status as JSON")
    args = parser.parse_args()

    body = load_batch(args.file)
    options = body.setdefault("options", {})
    if args.sequential:
        options["parallel"] = False
    if args.fail_fast:
        options["fail_fast"] = True
    if args.concurrency:
        options["max_concurrency"] = args.concurrency

    base = args.url.rstrip("/")
    try:
        with httpx.Client(base_url=base, timeout=30) as client:
            r = client.post("/batch", json=body)
            if r.status_code >= 400:
                print(f"Submit failed ({r.status_code}): {r.text}", file=sys.stderr)
                sys.exit(1)
            accepted = r.json()
            batch_id = accepted["batch_id"]
            print(f"Batch {batch_id}: {accepted['member_count']} members", flush=True)
            while True:
                status = client.get(accepted["status_url"]).json()
                print(f"  {status['status']} {status['progress']:.0f}% ({status['completed_count']}/{status['total_count']})", flush=True)
                if status["status"] in ("completed", "failed", "cancelled"):
                    break
                time.sleep(args.poll)
    except httpx.ConnectError:
        print(f"Cannot reach orchestration API at {base}. Is it running?", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps(status, indent=2))
    else:
        print_results(status)
        if status.get("error"):
            print("Error:", status["error"], file=sys.stderr)
    sys.exit(0 if status["status"] == "completed" else 2)


if __name__ == "__main__":
    main()
