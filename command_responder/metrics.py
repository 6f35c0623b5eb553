"""Prometheus metrics exposed on ``/metrics``."""

from prometheus_client import Counter

#: Failed or timed-out command executions, by action ``type``
#: (``"local"`` or ``"ssh"``).
COMMAND_ERRORS_TOTAL = Counter(
    "command_responder_command_errors_total",
    "Total command errors",
    ["type"],
)


def record_command_error(action_type: str) -> None:
    """Count one failed or timed-out execution of *action_type*."""
    COMMAND_ERRORS_TOTAL.labels(type=action_type).inc()
