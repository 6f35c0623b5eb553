"""API router receiving Alertmanager webhook notifications.

Endpoints
---------
* ``POST /alerts`` — accept a webhook payload and run the configured
  commands for every firing alert in the background.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, BackgroundTasks
from pydantic import BaseModel, ConfigDict, Field

from command_responder.alerts.handler import handle_alert
from command_responder.alerts.models import AlertEvent

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["alerts"])


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class WebhookPayload(BaseModel):
    """Alertmanager webhook body (``version: "4"``).

    Attributes:
        version: Payload format version.
        status: Group status, ``"firing"`` or ``"resolved"``.
        receiver: Name of the Alertmanager receiver.
        group_key: Key identifying the alert group.
        alerts: The alerts in this notification.
    """

    model_config = ConfigDict(populate_by_name=True)

    version: str = "4"
    status: str = ""
    receiver: str = ""
    group_key: str = Field(default="", alias="groupKey")
    truncated_alerts: int = Field(default=0, alias="truncatedAlerts")
    group_labels: dict[str, str] = Field(default_factory=dict, alias="groupLabels")
    common_labels: dict[str, str] = Field(default_factory=dict, alias="commonLabels")
    common_annotations: dict[str, str] = Field(default_factory=dict, alias="commonAnnotations")
    external_url: Optional[str] = Field(default=None, alias="externalURL")
    alerts: list[AlertEvent]


class WebhookResponse(BaseModel):
    """Acknowledgement returned to Alertmanager.

    Attributes:
        status: Always ``"ok"``.
        alerts: Number of firing alerts scheduled for handling.
    """

    status: str = "ok"
    alerts: int


def _handle_in_background(alert: AlertEvent) -> None:
    """Run :func:`handle_alert` and log any error it reports."""
    error = handle_alert(alert)
    if error is not None:
        logger.error("alert_handling_failed", alert=alert.fingerprint, err=str(error))


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/alerts", response_model=WebhookResponse)
def receive_alerts(payload: WebhookPayload, background_tasks: BackgroundTasks):
    """Schedule every firing alert in *payload* for handling.

    Resolved alerts are skipped.  Handling happens after the response is
    sent, so a slow command never delays Alertmanager.
    """
    scheduled = 0
    for alert in payload.alerts:
        if alert.status != "firing":
            logger.debug("alert_skipped", alert=alert.fingerprint, status=alert.status)
            continue
        background_tasks.add_task(_handle_in_background, alert)
        scheduled += 1

    logger.info("alerts_received", receiver=payload.receiver, alerts=len(payload.alerts), firing=scheduled)
    return WebhookResponse(alerts=scheduled)
