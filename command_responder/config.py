"""Application configuration via environment variables and defaults.

These values are the process-wide defaults every alert starts from.
Individual alerts may override some of them through annotations (see
:mod:`command_responder.alerts.resolver`); the rest are fixed here.

.. warning::

   When ``ssh_known_hosts`` is empty, **every** remote host key is
   accepted without verification.  This is convenient on trusted internal
   networks but leaves SSH actions open to man-in-the-middle attacks.
   Point ``COMMAND_RESPONDER_SSH_KNOWN_HOSTS`` at a known-hosts file to
   enable verification.
"""

import getpass
import json
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

from command_responder.durations import check_duration, parse_duration


def _current_user() -> str:
    """Return the login name of the process owner, or ``""`` if unknown."""
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


class Settings(BaseSettings):
    """Global configuration loaded from environment / ``.env`` file.

    Attributes:
        user: Default remote user for SSH actions.
        ssh_key: Path to a private key used for SSH public-key auth.
        ssh_password: Password for SSH auth, used when no key is set.
        ssh_known_hosts: Path to an OpenSSH ``known_hosts`` file.  Empty
            disables host-key verification.
        ssh_host_key_algorithms: Host-key algorithms offered during the
            handshake, in preference order.  Empty keeps the SSH library's
            defaults.
        ssh_connection_timeout: Seconds allowed to connect, handshake and
            authenticate.
        ssh_command_timeout: Seconds allowed for a remote command.
        local_command_timeout: Seconds allowed for a local command.
        log_level: Python logging level name.
        host: Bind address for the Uvicorn server.
        port: Bind port for the Uvicorn server.

    Timeouts accept plain seconds (``7.5``) or duration strings
    (``"30s"``, ``"2m"``).
    """

    user: str = Field(default_factory=_current_user)
    ssh_key: str = ""
    ssh_password: str = Field(default="", repr=False)
    ssh_known_hosts: str = ""
    ssh_host_key_algorithms: Annotated[list[str], NoDecode] = []
    ssh_connection_timeout: float = 5.0
    ssh_command_timeout: float = 10.0
    local_command_timeout: float = 10.0
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 10000

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "COMMAND_RESPONDER_",
        "frozen": True,
    }

    @field_validator(
        "ssh_connection_timeout",
        "ssh_command_timeout",
        "local_command_timeout",
        mode="before",
    )
    @classmethod
    def _parse_timeout(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                return parse_duration(value)
        if isinstance(value, (int, float)):
            return check_duration(float(value))
        return value

    @field_validator("ssh_host_key_algorithms", mode="before")
    @classmethod
    def _split_algorithms(cls, value: Any) -> Any:
        """Accept a JSON list or a comma-separated string."""
        if isinstance(value, str):
            value = value.strip()
            if value.startswith("["):
                return json.loads(value)
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


def get_settings() -> Settings:
    """Return the cached :class:`Settings` instance.

    The instance is constructed once and reused for the lifetime of the
    process.
    """
    return _settings


_settings = Settings()
