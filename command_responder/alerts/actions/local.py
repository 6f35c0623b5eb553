"""Alert action: execute a shell command on the responder host.

The command is passed to the platform shell unchanged and inherits the
responder's environment.  Output is captured in memory and logged once
the command finishes.  Bytes that are not valid UTF-8 are replaced with
U+FFFD rather than failing the action.
"""

import os
import signal
import subprocess
from typing import Optional

import structlog

from command_responder.alerts.errors import CommandError, CommandTimeoutError
from command_responder.alerts.models import ExecutionOutcome
from command_responder.durations import wait_timeout
from command_responder.metrics import record_command_error

logger = structlog.get_logger(__name__)

ACTION_TYPE = "local"


def _terminate(proc: subprocess.Popen) -> None:
    """Kill *proc* and anything it spawned, without waiting for exit."""
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except (ProcessLookupError, PermissionError):
        pass


def run_local_command(
    command: str,
    timeout: float,
    log: Optional[structlog.stdlib.BoundLogger] = None,
) -> ExecutionOutcome:
    """Run *command* through the shell with a hard deadline.

    Args:
        command: Shell command line.
        timeout: Seconds the whole invocation may take.
        log: Logger bound to the alert and action context.

    Returns:
        :class:`ExecutionOutcome` with status ``SUCCESS``, ``TIMEOUT`` or
        ``FAILURE``.  Every non-success increments the ``local`` error
        counter exactly once.
    """
    log = log or logger.bind(type=ACTION_TYPE, command=command)
    log.info("local_command_running")

    try:
        proc = subprocess.Popen(
            command,
            shell=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            encoding="utf-8",
            errors="replace",
            start_new_session=(os.name == "posix"),
        )
    except OSError as exc:
        log.error("local_command_start_failed", err=str(exc))
        record_command_error(ACTION_TYPE)
        return ExecutionOutcome.failure(CommandError(f"unable to start command: {exc}"))

    try:
        stdout, stderr = proc.communicate(timeout=wait_timeout(timeout))
    except subprocess.TimeoutExpired:
        _terminate(proc)
        # The whole process group is gone, so the pipes close promptly.
        stdout, stderr = proc.communicate()
        log.error("local_command_timed_out")
        record_command_error(ACTION_TYPE)
        return ExecutionOutcome.timeout(
            CommandTimeoutError(f"Local command timed out: {command}"),
            stdout or "",
            stderr or "",
        )

    if proc.returncode != 0:
        error = CommandError(f"exit status {proc.returncode}", exit_status=proc.returncode)
        log.error("local_command_failed", err=str(error), stderr=stderr.strip())
        record_command_error(ACTION_TYPE)
        return ExecutionOutcome.failure(error, stdout, stderr)

    log.info("local_command_completed", out=stdout, err=stderr)
    return ExecutionOutcome.success(stdout, stderr)
