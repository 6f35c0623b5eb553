"""Merge process-wide defaults with per-alert annotation overrides.

An alert selects and tunes its action through annotations::

    annotations:
      command_responder_ssh_host: "db01.example.com:22"
      command_responder_ssh_command: "systemctl restart postgresql"
      command_responder_ssh_command_timeout: "2m"

Only the keys in :data:`ANNOTATION_FIELDS` are honoured.  The SSH
password, known-hosts file, host-key algorithms and connection timeout
always come from :class:`~command_responder.config.Settings`.
"""

from typing import Optional

import structlog

from command_responder.alerts.errors import ConfigParseError
from command_responder.alerts.models import ActionSpec, AlertEvent
from command_responder.config import Settings
from command_responder.durations import parse_duration

logger = structlog.get_logger(__name__)

USER_ANNOTATION = "command_responder_user"
SSH_KEY_ANNOTATION = "command_responder_ssh_key"
SSH_HOST_ANNOTATION = "command_responder_ssh_host"
SSH_COMMAND_ANNOTATION = "command_responder_ssh_command"
SSH_COMMAND_TIMEOUT_ANNOTATION = "command_responder_ssh_command_timeout"
LOCAL_COMMAND_ANNOTATION = "command_responder_local_command"
LOCAL_COMMAND_TIMEOUT_ANNOTATION = "command_responder_local_command_timeout"

#: Annotation key -> :class:`ActionSpec` field it overrides.
ANNOTATION_FIELDS: dict[str, str] = {
    USER_ANNOTATION: "user",
    SSH_KEY_ANNOTATION: "ssh_key",
    SSH_HOST_ANNOTATION: "ssh_host",
    SSH_COMMAND_ANNOTATION: "ssh_command",
    SSH_COMMAND_TIMEOUT_ANNOTATION: "ssh_command_timeout",
    LOCAL_COMMAND_ANNOTATION: "local_command",
    LOCAL_COMMAND_TIMEOUT_ANNOTATION: "local_command_timeout",
}

_DURATION_FIELDS = frozenset({"ssh_command_timeout", "local_command_timeout"})


def defaults_from_settings(settings: Settings) -> dict:
    """Return the :class:`ActionSpec` fields seeded from *settings*."""
    return {
        "user": settings.user,
        "ssh_key": settings.ssh_key,
        "ssh_password": settings.ssh_password,
        "ssh_known_hosts": settings.ssh_known_hosts,
        "ssh_host_key_algorithms": tuple(settings.ssh_host_key_algorithms),
        "ssh_connection_timeout": settings.ssh_connection_timeout,
        "ssh_command_timeout": settings.ssh_command_timeout,
        "local_command_timeout": settings.local_command_timeout,
    }


def resolve_action(
    settings: Settings,
    alert: AlertEvent,
    log: Optional[structlog.stdlib.BoundLogger] = None,
) -> ActionSpec:
    """Build the :class:`ActionSpec` for *alert*.

    Args:
        settings: Process-wide defaults.
        alert: The incoming alert.
        log: Logger bound to the alert's identity.  Unparseable duration
            annotations are reported here.

    Returns:
        A frozen :class:`ActionSpec`.  A malformed duration annotation
        leaves the corresponding default in place; it never raises.
    """
    log = log or logger.bind(alert=alert.fingerprint, alertname=alert.name)
    fields = defaults_from_settings(settings)

    for annotation, field in ANNOTATION_FIELDS.items():
        if annotation not in alert.annotations:
            continue
        value = alert.annotations[annotation]
        if field in _DURATION_FIELDS:
            try:
                fields[field] = parse_duration(value)
            except ConfigParseError as exc:
                log.error("timeout_parse_failed", annotation=annotation, timeout=value, err=str(exc))
            continue
        fields[field] = value

    return ActionSpec(**fields)
