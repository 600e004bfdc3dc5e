"""Timestamped, leveled output + GitHub Actions formatting.

Everything goes to stderr so a child's captured stdout can be echoed cleanly.
"""

import os
import sys
from datetime import datetime

LEVELS = {"debug": 10, "info": 20, "warning": 30, "error": 40}


def _timestamp() -> str:
    return datetime.now().strftime("%H:%M:%S")


def _is_github_actions() -> bool:
    return os.environ.get("GITHUB_ACTIONS") == "true"


def _threshold() -> int:
    name = os.environ.get("FLOW_EXEC_LOG_LEVEL", "info").lower()
    return LEVELS.get(name, LEVELS["info"])


def _emit(level: str, msg: str) -> None:
    if LEVELS[level] < _threshold():
        return
    prefix = "" if level == "info" else f"{level.upper()}: "
    print(f"[{_timestamp()}] {prefix}{msg}", file=sys.stderr, flush=True)


def debug(msg: str) -> None:
    _emit("debug", msg)


def info(msg: str) -> None:
    _emit("info", msg)


def warning(msg: str) -> None:
    if _is_github_actions():
        print(f"::warning::{msg}", flush=True)
    _emit("warning", msg)


def error(msg: str) -> None:
    if _is_github_actions():
        print(f"::error::{msg}", flush=True)
    _emit("error", msg)


def step(msg: str) -> None:
    info(f"  {msg}")


def success(msg: str) -> None:
    info(f"  ✓ {msg}")


def failure(msg: str) -> None:
    if _is_github_actions():
        print(f"::error::{msg}", flush=True)
    info(f"  ✗ {msg}")
