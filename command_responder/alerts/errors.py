"""Exceptions raised while resolving and running alert actions.

Everything except :class:`ConfigParseError` is fatal to a single
execution attempt only.  Executors never let these escape to the
dispatcher; they are carried on the returned
:class:`~command_responder.alerts.models.ExecutionOutcome`.
"""


class CommandResponderError(Exception):
    """Base class for all command-responder errors."""


class ConfigParseError(CommandResponderError, ValueError):
    """A duration override could not be parsed; the default is kept."""


class AuthSetupError(CommandResponderError):
    """The SSH private key could not be read or parsed."""


class DialError(CommandResponderError):
    """The SSH connection could not be established.

    Covers refused or unreachable hosts, handshake failures, rejected host
    keys, unreadable known-hosts files, and failed authentication.
    """


class HostKeyError(DialError):
    """The remote host key was rejected by the verification policy."""


class SessionError(CommandResponderError):
    """A session could not be opened on an established SSH connection."""


class CommandError(CommandResponderError):
    """The command exited non-zero or could not be run.

    Attributes:
        exit_status: Process exit status, or ``None`` when the command
            never produced one (launch or transport error).
    """

    def __init__(self, message: str, exit_status: int | None = None):
        super().__init__(message)
        self.exit_status = exit_status


class CommandTimeoutError(CommandResponderError, TimeoutError):
    """The command did not finish before its deadline."""
