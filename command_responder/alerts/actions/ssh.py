"""Alert action: run a command on a remote host over SSH.

Steps for each attempt:

1. Load the private key (if configured) for public-key auth, otherwise
   fall back to password auth.
2. Connect, handshake and verify the server's host key under the
   connection timeout, then authenticate.
3. Run the command in a worker thread, waiting at most the command
   timeout.  On timeout the connection is closed and whatever the worker
   produces afterwards is thrown away.

Host-key verification
---------------------
With ``ssh_known_hosts`` set, the server's key must match an entry for
the host in that file (read fresh on every attempt).  With it empty,
**any host key is accepted**.  That default suits trusted networks only.
"""

import socket
import threading
from typing import Optional, Union

import paramiko
import structlog
from paramiko.hostkeys import HostKeyEntry, InvalidHostKey
from paramiko.pkey import UnknownKeyType

from command_responder.alerts.errors import (
    AuthSetupError,
    CommandError,
    CommandTimeoutError,
    DialError,
    HostKeyError,
    SessionError,
)
from command_responder.alerts.models import ActionSpec, ExecutionOutcome
from command_responder.durations import wait_timeout
from command_responder.metrics import record_command_error

logger = structlog.get_logger(__name__)

ACTION_TYPE = "ssh"
DEFAULT_PORT = 22

# Errors paramiko and the socket layer raise on a broken connection.
_TRANSPORT_ERRORS = (paramiko.SSHException, OSError, EOFError)


# ---------------------------------------------------------------------------
# Addresses and keys
# ---------------------------------------------------------------------------


def split_host_port(address: str) -> tuple[str, int]:
    """Split ``host:port`` (or ``[v6addr]:port``) into its parts.

    The port defaults to 22 when omitted.

    Raises:
        DialError: If the port is not a number.
    """
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
    elif address.count(":") == 1:
        host, _, port = address.partition(":")
    else:
        host, port = address, ""

    if not port:
        return host, DEFAULT_PORT
    try:
        return host, int(port)
    except ValueError:
        raise DialError(f"invalid port in address {address!r}") from None


def known_hosts_name(host: str, port: int) -> str:
    """Return the name OpenSSH uses for *host* in ``known_hosts``."""
    if port == DEFAULT_PORT:
        return host
    return f"[{host}]:{port}"


def load_private_key(path: str) -> paramiko.PKey:
    """Read and parse the private key at *path*.

    Raises:
        AuthSetupError: If the file cannot be read or is not a supported,
            unencrypted private key.
    """
    try:
        return paramiko.PKey.from_path(path)
    except (OSError, ValueError, TypeError, UnknownKeyType, paramiko.SSHException) as exc:
        raise AuthSetupError(f"unable to load private key {path}: {exc}") from exc


# ---------------------------------------------------------------------------
# Host-key policies
# ---------------------------------------------------------------------------


def load_known_hosts(path: str) -> paramiko.HostKeys:
    """Read an OpenSSH ``known_hosts`` file, rejecting any line it cannot parse.

    ``paramiko.HostKeys`` skips lines it cannot parse, so every line is
    checked before the file is loaded.  Blank lines, comments and
    ``@cert-authority`` / ``@revoked`` marker lines are passed over.

    Raises:
        DialError: If the file cannot be read or holds an invalid entry.
    """
    try:
        with open(path, encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, 1):
                line = line.strip()
                if not line or line.startswith(("#", "@")):
                    continue
                if HostKeyEntry.from_line(line, lineno) is None:
                    raise DialError(f"knownhosts: {path}:{lineno}: invalid entry")
        return paramiko.HostKeys(path)
    except (OSError, ValueError, InvalidHostKey, paramiko.SSHException) as exc:
        raise DialError(f"unable to load known hosts {path}: {exc}") from exc


class AcceptAnyHostKey:
    """Accept every host key.  Used when no known-hosts file is configured."""

    def verify(
        self, hostname: str, remote: str, key: paramiko.PKey, log: structlog.stdlib.BoundLogger
    ) -> None:
        log.debug("ssh_host_key_accepted", hostname=hostname, remote=remote, key=key.get_base64())


class KnownHostsFile:
    """Accept a host key only if it is listed for the host in *path*.

    Attributes:
        path: OpenSSH ``known_hosts`` file, loaded on every verification.
    """

    def __init__(self, path: str):
        self.path = path

    def verify(
        self, hostname: str, remote: str, key: paramiko.PKey, log: structlog.stdlib.BoundLogger
    ) -> None:
        log.debug("ssh_host_key_verifying", hostname=hostname, remote=remote, key=key.get_base64())
        try:
            host_keys = load_known_hosts(self.path)
        except DialError as exc:
            log.error("ssh_known_hosts_load_failed", err=str(exc), known_hosts=self.path)
            raise

        if not host_keys.check(hostname, key):
            raise HostKeyError(
                f"host key {key.get_name()} for {hostname} not found in {self.path}"
            )


HostKeyPolicy = Union[AcceptAnyHostKey, KnownHostsFile]


def host_key_policy(known_hosts: str) -> HostKeyPolicy:
    """Pick the verification policy for a known-hosts path (may be empty)."""
    if known_hosts:
        return KnownHostsFile(known_hosts)
    return AcceptAnyHostKey()


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


def _close(transport: paramiko.Transport, sock: socket.socket) -> None:
    # An unstarted transport does not close its socket.
    transport.close()
    sock.close()


def connect(
    spec: ActionSpec,
    pkey: Optional[paramiko.PKey],
    policy: HostKeyPolicy,
    log: structlog.stdlib.BoundLogger,
) -> paramiko.Transport:
    """Open an authenticated SSH transport to ``spec.ssh_host``.

    ``spec.ssh_connection_timeout`` bounds the TCP connect, the banner and
    key exchange, and authentication separately.  Zero leaves the TCP
    connect unbounded and keeps paramiko's own handshake and auth limits.

    Raises:
        DialError: On any failure.  The transport is closed before raising.
    """
    host, port = split_host_port(spec.ssh_host)
    timeout = wait_timeout(spec.ssh_connection_timeout) or None
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as exc:
        raise DialError(f"dial tcp {spec.ssh_host}: {exc}") from exc

    transport = paramiko.Transport(sock)
    try:
        if timeout:
            transport.banner_timeout = timeout
            transport.handshake_timeout = timeout
            transport.auth_timeout = timeout
        if spec.ssh_host_key_algorithms:
            transport.get_security_options().key_types = spec.ssh_host_key_algorithms
        transport.start_client(timeout=timeout)

        peer = transport.getpeername()
        policy.verify(
            known_hosts_name(host, port),
            f"{peer[0]}:{peer[1]}",
            transport.get_remote_server_key(),
            log,
        )

        if pkey is not None:
            transport.auth_publickey(spec.user, pkey)
        elif spec.ssh_password:
            transport.auth_password(spec.user, spec.ssh_password)
        else:
            transport.auth_none(spec.user)
    except DialError:
        _close(transport, sock)
        raise
    except (ValueError, *_TRANSPORT_ERRORS) as exc:
        _close(transport, sock)
        raise DialError(f"ssh: {exc}") from exc
    return transport


# ---------------------------------------------------------------------------
# Command execution
# ---------------------------------------------------------------------------


def _read_all(stream, result: dict) -> None:
    try:
        result["data"] = stream.read()
    except _TRANSPORT_ERRORS as exc:
        result["error"] = exc


class CommandRun:
    """One remote command executed in a worker thread.

    The caller waits with :meth:`wait`.  If the wait times out the run is
    marked abandoned under the lock, and the worker discards its results
    instead of publishing them.  Once :meth:`wait` has returned, the
    attributes below never change.

    Attributes:
        stdout: Captured standard output.
        stderr: Captured standard error.
        error: :class:`SessionError`, :class:`CommandError`, or ``None``.
    """

    def __init__(self, transport: paramiko.Transport, command: str):
        self._transport = transport
        self._command = command
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._abandoned = False
        self.stdout = ""
        self.stderr = ""
        self.error: Optional[Exception] = None
        self._thread = threading.Thread(target=self._run, name="ssh-command", daemon=True)

    def start(self) -> "CommandRun":
        self._thread.start()
        return self

    def wait(self, timeout: float) -> bool:
        """Wait up to *timeout* seconds; return ``False`` if abandoned."""
        if self._done.wait(wait_timeout(max(timeout, 0))):
            return True
        with self._lock:
            if self._done.is_set():
                return True
            self._abandoned = True
        return False

    def _execute(self) -> tuple[str, str, Optional[Exception]]:
        try:
            channel = self._transport.open_session()
        except _TRANSPORT_ERRORS as exc:
            return "", "", SessionError(f"ssh: unable to open session: {exc}")

        try:
            channel.exec_command(self._command)
            # The server stops sending on a stream whose window is full, so
            # stderr is drained alongside stdout.
            stderr_result: dict = {}
            stderr_reader = threading.Thread(
                target=_read_all,
                args=(channel.makefile_stderr("rb"), stderr_result),
                name="ssh-stderr",
                daemon=True,
            )
            stderr_reader.start()
            stdout = channel.makefile("rb").read().decode("utf-8", errors="replace")
            stderr_reader.join()
            if "error" in stderr_result:
                raise stderr_result["error"]
            stderr = stderr_result["data"].decode("utf-8", errors="replace")
            status = channel.recv_exit_status()
        except _TRANSPORT_ERRORS as exc:
            return "", "", CommandError(f"ssh: {exc}")
        finally:
            channel.close()

        if status != 0:
            return stdout, stderr, CommandError(f"Process exited with status {status}", status)
        return stdout, stderr, None

    def _run(self) -> None:
        stdout, stderr, error = self._execute()
        with self._lock:
            if self._abandoned:
                return
            self.stdout, self.stderr, self.error = stdout, stderr, error
            self._done.set()


def run_ssh_command(
    spec: ActionSpec,
    log: Optional[structlog.stdlib.BoundLogger] = None,
) -> ExecutionOutcome:
    """Run ``spec.ssh_command`` on ``spec.ssh_host``.

    Args:
        spec: Resolved action configuration.
        log: Logger bound to the alert and action context.

    Returns:
        :class:`ExecutionOutcome`.  Every non-success increments the
        ``ssh`` error counter exactly once, and the connection (if one was
        made) is closed before returning.
    """
    log = log or logger.bind(type=ACTION_TYPE, ssh_host=spec.ssh_host, command=spec.ssh_command)
    log.info("ssh_command_running")

    pkey = None
    if spec.ssh_key:
        try:
            pkey = load_private_key(spec.ssh_key)
        except AuthSetupError as exc:
            log.error("ssh_key_setup_failed", err=str(exc))
            record_command_error(ACTION_TYPE)
            return ExecutionOutcome.failure(exc)

    try:
        transport = connect(spec, pkey, host_key_policy(spec.ssh_known_hosts), log)
    except DialError as exc:
        log.error("ssh_connect_failed", err=str(exc))
        record_command_error(ACTION_TYPE)
        return ExecutionOutcome.failure(exc)

    try:
        run = CommandRun(transport, spec.ssh_command).start()
        if not run.wait(spec.ssh_command_timeout):
            log.error("ssh_command_timed_out")
            record_command_error(ACTION_TYPE)
            return ExecutionOutcome.timeout(
                CommandTimeoutError(f"Timeout executing SSH command: {spec.ssh_command}")
            )

        if isinstance(run.error, SessionError):
            log.error("ssh_session_failed", err=str(run.error))
        elif run.error is not None:
            log.error("ssh_command_failed", err=str(run.error), stderr=run.stderr.strip())
        if run.error is not None:
            record_command_error(ACTION_TYPE)
            return ExecutionOutcome.failure(run.error, run.stdout, run.stderr)

        log.info("ssh_command_completed", out=run.stdout, err=run.stderr)
        return ExecutionOutcome.success(run.stdout, run.stderr)
    finally:
        transport.close()
