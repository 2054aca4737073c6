"""Append-only per-invocation task log files.

Format (consumed by log tailing tools):

    === TASK LOG: <task_id> ===
    Provider: <provider>
    Command: <command>
    Started: <timestamp>

    [<timestamp>] <LEVEL>: <message>
"""

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_LOGS_DIR = Path(".crewx") / "logs"


class LogLevel(str, Enum):
    STDOUT = "STDOUT"
    STDERR = "STDERR"
    INFO = "INFO"
    ERROR = "ERROR"


def _timestamp() -> str:
    return datetime.now().strftime("%c")


class TaskLog:
    """Log file owned by a single invocation, keyed by task id.

    Write failures are logged and never interrupt the invocation.
    """

    def __init__(self, task_id: str, logs_dir: Path | None = None) -> None:
        self.task_id = task_id
        self.path = (logs_dir or DEFAULT_LOGS_DIR) / f"{task_id}.log"

    def start(self, provider: str, command: str) -> None:
        """Write the header, or note a new command if the log already exists."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self.path.exists():
                self.info(f"Command: {command}")
                return
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(
                    f"=== TASK LOG: {self.task_id} ===\n"
                    f"Provider: {provider}\n"
                    f"Command: {command}\n"
                    f"Started: {_timestamp()}\n"
                    f"\n"
                )
        except OSError as e:
            logger.error(f"Failed to create task log {self.path}: {e}")

    def append(self, level: LogLevel, message: str) -> None:
        line = f"[{_timestamp()}] {level.value}: {message}\n"
        try:
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line)
        except OSError as e:
            logger.error(f"Failed to append to task log {self.path}: {e}")

    def info(self, message: str) -> None:
        self.append(LogLevel.INFO, message)

    def error(self, message: str) -> None:
        self.append(LogLevel.ERROR, message)
