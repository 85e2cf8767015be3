# cli.py
"""
Command-line entry point.

    multi-engine-dashboard init-db
    multi-engine-dashboard serve --port 8000
    multi-engine-dashboard submit 12 "Summarize the plot"
    multi-engine-dashboard history 3
"""
from __future__ import annotations

import argparse
import os
import sys
from typing import List, Optional

from multi_engine_dashboard.aggregator import ResultAggregator
from multi_engine_dashboard.config import DB_FILE_PATH, configure_logging, load_provider_settings
from multi_engine_dashboard.db.services import open_store
from multi_engine_dashboard.engine import FanOutEngine
from multi_engine_dashboard.errors import ValidationError
from multi_engine_dashboard.llm_client import build_gateways


def _preview(text: str, width: int = 100) -> str:
    line = " ".join(text.split())
    return line if len(line) <= width else line[: width - 1] + "…"


def cmd_init_db(args) -> int:
    open_store(args.db)
    print(f"Database ready at {args.db}")
    return 0


def cmd_serve(args) -> int:
    import uvicorn

    # read again by api.get_app, also in reloader subprocesses
    os.environ["DATABASE_PATH"] = args.db
    uvicorn.run(
        "multi_engine_dashboard.api:get_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


def cmd_submit(args) -> int:
    store = open_store(args.db)
    if store.projects.get_step(args.step_id) is None:
        print(f"Step {args.step_id} does not exist", file=sys.stderr)
        return 1

    engine = FanOutEngine(
        gateways=build_gateways(load_provider_settings()),
        result_service=store.results,
    )
    try:
        outcomes = engine.submit(args.prompt, args.step_id)
    except ValidationError as e:
        print(e.message, file=sys.stderr)
        return 2

    for name, outcome in outcomes.items():
        if outcome.ok:
            latency = outcome.metadata.get("latency")
            print(f"[{name}] ok ({latency} ms): {_preview(outcome.text)}")
        else:
            print(f"[{name}] {outcome.kind} error: {outcome.error}")

    return 0 if any(o.ok for o in outcomes.values()) else 1


def cmd_history(args) -> int:
    store = open_store(args.db)
    project = store.projects.get_project(args.project_id)
    if project is None:
        print(f"Project {args.project_id} does not exist", file=sys.stderr)
        return 1

    print(f"{project.name} (#{project.id})")
    step_groups = ResultAggregator(store).project_history(project.id)
    if not step_groups:
        print("  No results yet.")
    for sg in step_groups:
        print(f"\n{sg.step.order_index}. {sg.step.name} [{sg.result_count}]")
        for pg in sg.prompt_groups:
            print(f"  {pg.timestamp}  {_preview(pg.prompt, 80)}")
            for r in pg.results:
                print(f"    - {r.engine}: {_preview(r.response, 70)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="multi-engine-dashboard",
        description="Send prompts to several text-generation engines and review the results.",
    )
    parser.add_argument(
        "--db",
        default=str(DB_FILE_PATH),
        help=f"SQLite database file (default: {DB_FILE_PATH})",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_init = sub.add_parser("init-db", help="Create or migrate the database")
    p_init.set_defaults(func=cmd_init_db)

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true")
    p_serve.set_defaults(func=cmd_serve)

    p_submit = sub.add_parser("submit", help="Send a prompt to every engine")
    p_submit.add_argument("step_id", type=int)
    p_submit.add_argument("prompt")
    p_submit.set_defaults(func=cmd_submit)

    p_history = sub.add_parser("history", help="Show a project's results by step")
    p_history.add_argument("project_id", type=int)
    p_history.set_defaults(func=cmd_history)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
