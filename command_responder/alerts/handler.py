"""Per-alert entry point: resolve the action, then dispatch it."""

from typing import Optional

import structlog

from command_responder.alerts.actions import dispatch_action
from command_responder.alerts.models import AlertEvent
from command_responder.alerts.resolver import resolve_action
from command_responder.config import Settings, get_settings

logger = structlog.get_logger(__name__)


def handle_alert(alert: AlertEvent, settings: Optional[Settings] = None) -> Optional[Exception]:
    """Run the commands configured for *alert*.

    Args:
        alert: The incoming alert.
        settings: Defaults to merge with the alert's annotations.  The
            process-wide settings are used when omitted.

    Returns:
        The last error encountered, or ``None`` if every configured action
        succeeded (or none was configured).
    """
    log = logger.bind(alert=alert.fingerprint, alertname=alert.name)
    log.debug("alert_received")

    spec = resolve_action(settings or get_settings(), alert, log)
    if not spec.local_command and not spec.ssh_command:
        log.debug("alert_has_no_command")
        return None
    return dispatch_action(spec, log)
