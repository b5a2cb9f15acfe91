"""Runtime file for a detached ``mockpay start``: which process to stop, and
which data directory the other CLI commands should act on."""

import os
import time
from typing import Optional

from mockpay.shared.file_store import FileStore


def runtime_path(base_dir: Optional[str] = None) -> str:
    return os.path.join(base_dir or os.getcwd(), ".mockpay", "runtime.json")


def write_runtime(pid: int, data_dir: str, path: Optional[str] = None) -> dict:
    state = {
        "pid": pid,
        "started_at": int(time.time() * 1000),
        "data_dir": data_dir,
    }
    FileStore.write_json(path or runtime_path(), state)
    return state


def read_runtime(path: Optional[str] = None) -> Optional[dict]:
    path = path or runtime_path()
    if not os.path.exists(path):
        return None
    try:
        state = FileStore.read_json(path)
    except ValueError:
        return None
    if not isinstance(state, dict) or "pid" not in state:
        return None
    return state


def clear_runtime(path: Optional[str] = None) -> None:
    path = path or runtime_path()
    if os.path.exists(path):
        os.unlink(path)


def is_pid_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True
