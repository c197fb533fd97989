#!/usr/bin/env python3
"""Print a summary of a packwatch state file without modifying it.

Safe to run while the daemon is up: the daemon replaces the file
atomically, so this always reads a complete snapshot.

Usage
-----
    python scripts/inspect_state.py watch.json
    python scripts/inspect_state.py --pending-only watch.json
    python scripts/inspect_state.py --json watch.json
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from pydantic import ValidationError

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from packwatch.state.store import WatchState  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect a packwatch state file (read-only)")
    parser.add_argument("state_file", type=Path)
    parser.add_argument(
        "--pending-only",
        action="store_true",
        help="Only list entries whose generation never succeeded.",
    )
    parser.add_argument("--json", action="store_true", help="Print the parsed state as JSON.")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    try:
        text = args.state_file.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Cannot read {args.state_file}: {exc}", file=sys.stderr)
        return 2

    # load_state() would move a corrupt file aside.
    try:
        state = WatchState.model_validate_json(text)
    except ValidationError as exc:
        print(f"{args.state_file} is not a valid state file:\n{exc}", file=sys.stderr)
        return 1

    if args.json:
        print(state.to_json(), end="")
        return 0

    print(f"last poll : {state.last_poll.isoformat() if state.last_poll else 'never'}")
    print(f"entries   : {len(state.servers)}")
    width = max((len(key) for key in state.servers), default=20)
    for key in sorted(state.servers):
        server = state.servers[key]
        if args.pending_only and server.generated_at is not None:
            continue
        generated = server.generated_at.isoformat() if server.generated_at else "-"
        print(f"  {key:<{width}}  generated {generated}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
