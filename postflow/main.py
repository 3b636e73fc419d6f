"""Command line entry for the postflow API and its outbox worker roles.

``python -m postflow.main --role api`` serves the HTTP surface;
``--role worker-publish`` (or another ``worker-*`` role) serves the health
endpoints and drains that job type's queue in the background.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import uuid

import uvicorn
from fastapi import FastAPI

from postflow.api.http_app import build_app
from postflow.logging_setup import configure_logging
from postflow.roles import ROLE_TO_JOB_TYPE, SUPPORTED_ROLES, RuntimeRole, validate_role
from postflow.services.bootstrap import build_runtime_container

API_PORT = 8000
WORKER_PORT = 8100
# Module path handed to uvicorn so --reload can rebuild the app in a child process.
APP_FACTORY = "postflow.main:create_runtime_app"

logger = logging.getLogger("runtime")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="postflow",
        description="Run the postflow API or one of its outbox workers.",
    )
    parser.add_argument("--role", required=True, help=f"one of: {', '.join(SUPPORTED_ROLES)}")
    parser.add_argument("--host", default=os.getenv("APP_HOST", "0.0.0.0"), help="bind address (env APP_HOST)")
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help=f"bind port (default {API_PORT} for api, {WORKER_PORT} for workers)",
    )
    parser.add_argument(
        "--dry-run-startup",
        action="store_true",
        help="resolve the role and configuration, then exit without serving",
    )
    parser.add_argument("--reload", action="store_true", help="restart on source changes (development only)")
    return parser.parse_args(argv)


def _build(role: RuntimeRole, run_id: str) -> FastAPI:
    container = build_runtime_container(role)
    return build_app(
        role=role.name,
        run_id=run_id,
        worker_loop=container.worker_loop,
        api_deps=container.api_deps,
        on_startup=container.on_startup,
        on_shutdown=container.on_shutdown,
    )


def create_runtime_app() -> FastAPI:
    """uvicorn factory used by ``--reload``; the role arrives through APP_ROLE."""
    configure_logging()
    return _build(validate_role(os.getenv("APP_ROLE", "api")), str(uuid.uuid4()))


def run(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        role = validate_role(args.role)
    except ValueError as exc:
        sys.stderr.write(f"ERROR: {exc}\n")
        return 2

    configure_logging()
    run_id = str(uuid.uuid4())
    job_type = ROLE_TO_JOB_TYPE.get(role.name)
    context = {
        "role": role.name,
        "service": role.name,
        "run_id": run_id,
        "job_type": str(job_type) if job_type is not None else None,
        "storage": "postgres" if os.getenv("DATABASE_URL") else "memory",
    }
    logger.info("postflow runtime initialized", extra=context)
    if args.dry_run_startup:
        logger.info("dry-run startup complete", extra=context)
        return 0

    port = args.port if args.port is not None else (WORKER_PORT if role.is_worker else API_PORT)
    if args.reload:
        os.environ["APP_ROLE"] = role.name
        uvicorn.run(APP_FACTORY, host=args.host, port=port, log_level="warning", reload=True, factory=True)
    else:
        uvicorn.run(_build(role, run_id), host=args.host, port=port, log_level="warning")
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
