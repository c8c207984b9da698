#!/usr/bin/env -S uv run python
"""Development task runner for Stash Battle.

Usage:
    ./dev.py <command> [args...]

Server Commands:
    serve       Start server in foreground (--host, --port, --no-reload)

Quality Commands:
    fmt             Format code with ruff (--check to verify only)
    lint            Lint code with ruff (--fix to auto-fix)
    test            Run pytest (pass additional args after)

Database Commands:
    db-migrate  Run database migrations
    db-reset    Reset database (drops cached scenes and the saved session)

Maintenance Commands:
    clean       Remove runtime state (.dev/)
    help        Show this help message
"""

from __future__ import annotations

import hashlib
import os
import shutil
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent
DEV_DIR = PROJECT_ROOT / ".dev"

DEFAULT_ENV = {
    "STASH_BATTLE_DB_PATH": str(DEV_DIR / "stash-battle.db"),
    "STASH_BATTLE_LOG_LEVEL": "DEBUG",
}


def get_default_port() -> int:
    """Deterministic port from the project path, so checkouts don't collide."""
    hash_bytes = hashlib.sha256(str(PROJECT_ROOT).encode()).digest()
    port_offset = int.from_bytes(hash_bytes[:2], "big") % 1000
    return 8000 + port_offset


def dev_env() -> dict[str, str]:
    DEV_DIR.mkdir(exist_ok=True)
    env = os.environ.copy()
    for key, value in DEFAULT_ENV.items():
        env.setdefault(key, value)
    return env


def run(cmd: list[str], env: dict[str, str] | None = None) -> int:
    """Run a command, printing it first."""
    print(f"\n→ {' '.join(cmd)}")
    return subprocess.run(cmd, cwd=PROJECT_ROOT, env=env, check=False).returncode


def cmd_serve(host: str = "127.0.0.1", port: int | None = None, reload: bool = True) -> int:
    """Start development server in foreground (blocking)."""
    actual_port = port or get_default_port()
    cmd = [
        "uv",
        "run",
        "uvicorn",
        "stashbattle.web.app:app",
        "--host",
        host,
        "--port",
        str(actual_port),
    ]
    if reload:
        cmd.append("--reload")
    print(f"Starting server on http://{host}:{actual_port}")
    return run(cmd, env=dev_env())


def cmd_fmt(check: bool = False) -> int:
    args = ["uv", "run", "ruff", "format"]
    if check:
        args.append("--check")
    return run([*args, "."])


def cmd_lint(fix: bool = False) -> int:
    args = ["uv", "run", "ruff", "check"]
    if fix:
        args.append("--fix")
    return run([*args, "."])


def cmd_test(args: list[str] | None = None) -> int:
    """Run pytest with optional arguments."""
    return run(["uv", "run", "pytest", *(args or [])])


def cmd_db_migrate() -> int:
    return run(["uv", "run", "python", "-m", "stashbattle.db.migrate"], env=dev_env())


def cmd_db_reset() -> int:
    """Reset database (deletes cached listings and the saved session)."""
    print("⚠️  This will delete the cache and saved session. Continue? [y/N] ", end="")
    if input().strip().lower() != "y":
        print("Aborted.")
        return 1
    return run(["uv", "run", "python", "-m", "stashbattle.db.reset"], env=dev_env())


def cmd_clean() -> int:
    """Remove all runtime state."""
    if DEV_DIR.exists():
        print(f"Removing {DEV_DIR}/...")
        shutil.rmtree(DEV_DIR)
        print("✓ Cleaned up development state")
    else:
        print("Nothing to clean")
    return 0


def cmd_help() -> int:
    print(__doc__)
    return 0


def main() -> int:
    if len(sys.argv) < 2:
        return cmd_help()

    command = sys.argv[1]
    args = sys.argv[2:]

    match command:
        case "serve":
            host = "127.0.0.1"
            port = None
            for i, arg in enumerate(args):
                if arg == "--host" and i + 1 < len(args):
                    host = args[i + 1]
                elif arg == "--port" and i + 1 < len(args):
                    port = int(args[i + 1])
            return cmd_serve(host=host, port=port, reload="--no-reload" not in args)
        case "fmt":
            return cmd_fmt(check="--check" in args)
        case "lint":
            return cmd_lint(fix="--fix" in args)
        case "test":
            return cmd_test(args)
        case "db-migrate":
            return cmd_db_migrate()
        case "db-reset":
            return cmd_db_reset()
        case "clean":
            return cmd_clean()
        case "help" | "--help" | "-h":
            return cmd_help()
        case _:
            print(f"Unknown command: {command}")
            return cmd_help()


if __name__ == "__main__":
    sys.exit(main())
