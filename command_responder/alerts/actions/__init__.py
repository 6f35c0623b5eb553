"""Alert actions: local shell command and remote SSH command.

The :func:`dispatch_action` function is the single entry point.  It
runs whichever actions the :class:`ActionSpec` configures, local first,
then SSH, and reports each outcome.
"""

import time
from typing import Optional

import structlog

from command_responder.alerts.models import ActionSpec, ExecutionOutcome
from command_responder.durations import format_duration


def _report(log: structlog.stdlib.BoundLogger, outcome: ExecutionOutcome, started: float) -> None:
    if not outcome.ok:
        log.error("command_failed", err=str(outcome.error), status=outcome.status.value)
    log.info("command_completed", status=outcome.status.value, duration=round(time.monotonic() - started, 3))


def dispatch_action(spec: ActionSpec, log: structlog.stdlib.BoundLogger) -> Optional[Exception]:
    """Run the local and/or SSH command configured in *spec*.

    Both actions run when both commands are set, one after the other.  A
    failure in the first does not prevent the second.

    Args:
        spec: Resolved per-alert action configuration.
        log: Logger bound to the alert's identity.

    Returns:
        The error of the last action that failed, or ``None``.
    """
    error: Optional[Exception] = None

    if spec.local_command:
        from command_responder.alerts.actions.local import run_local_command

        local_log = log.bind(type="local", command=spec.local_command)
        started = time.monotonic()
        outcome = run_local_command(
            spec.local_command,
            spec.local_command_timeout,
            local_log.bind(timeout=format_duration(spec.local_command_timeout)),
        )
        _report(local_log, outcome, started)
        if outcome.error is not None:
            error = outcome.error

    if spec.ssh_command:
        from command_responder.alerts.actions.ssh import run_ssh_command

        ssh_log = log.bind(
            type="ssh",
            user=spec.user,
            ssh_key=spec.ssh_key,
            ssh_host=spec.ssh_host,
            command=spec.ssh_command,
        )
        started = time.monotonic()
        outcome = run_ssh_command(spec, ssh_log.bind(timeout=format_duration(spec.ssh_command_timeout)))
        _report(ssh_log, outcome, started)
        if outcome.error is not None:
            error = outcome.error

    return error
