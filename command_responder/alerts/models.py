"""Value objects passed between the webhook layer, resolver and executors.

* :class:`AlertEvent` — one alert as decoded from an Alertmanager
  webhook payload.
* :class:`ActionSpec` — the per-alert action configuration produced by
  :func:`~command_responder.alerts.resolver.resolve_action`.
* :class:`ExecutionOutcome` — the result of one executor invocation.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AlertEvent(BaseModel):
    """A single alert from an Alertmanager notification.

    Attributes:
        status: ``"firing"`` or ``"resolved"``.
        labels: Identifying labels, including ``alertname``.
        annotations: Free-form annotations; the ``command_responder_*``
            keys configure the action to run.
        fingerprint: Alertmanager's stable identifier for the label set.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status: str = "firing"
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    fingerprint: str = ""
    starts_at: Optional[datetime] = Field(default=None, alias="startsAt")
    ends_at: Optional[datetime] = Field(default=None, alias="endsAt")
    generator_url: str = Field(default="", alias="generatorURL")

    @property
    def name(self) -> str:
        """The ``alertname`` label, falling back to the fingerprint."""
        return self.labels.get("alertname", self.fingerprint)


class ActionSpec(BaseModel):
    """What to run for one alert, and how.

    Every field holds either the process-wide default or the value of the
    alert annotation that overrides it.  Timeouts are in seconds.  An empty
    ``local_command`` and ``ssh_command`` means nothing is run.
    """

    model_config = ConfigDict(frozen=True)

    user: str = ""
    ssh_key: str = ""
    ssh_password: str = Field(default="", repr=False)
    ssh_known_hosts: str = ""
    ssh_host_key_algorithms: tuple[str, ...] = ()
    ssh_connection_timeout: float = 0.0
    ssh_command_timeout: float = 0.0
    ssh_host: str = ""
    ssh_command: str = ""
    local_command: str = ""
    local_command_timeout: float = 0.0


class Status(str, enum.Enum):
    """Terminal status of an execution attempt."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    FAILURE = "failure"


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of one local or SSH command execution.

    Attributes:
        status: How the attempt ended.
        stdout: Captured standard output (may be partial or empty on
            failure).
        stderr: Captured standard error.
        error: The cause for :attr:`Status.TIMEOUT` and
            :attr:`Status.FAILURE`; ``None`` on success.
    """

    status: Status
    stdout: str = ""
    stderr: str = ""
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS

    @classmethod
    def success(cls, stdout: str = "", stderr: str = "") -> "ExecutionOutcome":
        return cls(Status.SUCCESS, stdout, stderr)

    @classmethod
    def timeout(cls, error: Exception, stdout: str = "", stderr: str = "") -> "ExecutionOutcome":
        return cls(Status.TIMEOUT, stdout, stderr, error)

    @classmethod
    def failure(cls, error: Exception, stdout: str = "", stderr: str = "") -> "ExecutionOutcome":
        return cls(Status.FAILURE, stdout, stderr, error)
