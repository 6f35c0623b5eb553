"""Shared pytest fixtures for the command-responder test suite.

SSH tests run against :class:`FakeSSHServer`, an in-process paramiko
server bound to a random localhost port.  It accepts user ``alice``
with password ``s3cret`` or the generated client key, and understands a
few scripted commands:

* ``echo <text>`` — writes ``<text>`` to stdout, exits 0.
* ``sleep <seconds>`` — sleeps, then writes ``done``, exits 0.
* ``fail`` — writes ``boom`` to stderr, exits 3.
* ``spew <bytes>`` — writes ``<bytes>`` bytes to stderr, then ``ok`` to
  stdout, exits 0.
"""

import os

# Keep developer environment variables out of the settings under test.
for _key in [k for k in os.environ if k.startswith("COMMAND_RESPONDER_")]:
    del os.environ[_key]

import socket
import threading
import time

import paramiko
import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from command_responder.alerts.models import ActionSpec
from command_responder.main import app

SSH_USER = "alice"
SSH_PASSWORD = "s3cret"


def error_count(action_type: str) -> float:
    """Current value of the command error counter for *action_type*."""
    value = REGISTRY.get_sample_value(
        "command_responder_command_errors_total", {"type": action_type}
    )
    return value or 0.0


def make_spec(**overrides) -> ActionSpec:
    """Build an :class:`ActionSpec` with short test timeouts."""
    fields = {
        "user": SSH_USER,
        "ssh_connection_timeout": 5.0,
        "ssh_command_timeout": 5.0,
        "local_command_timeout": 5.0,
    }
    fields.update(overrides)
    return ActionSpec(**fields)


def closed_port() -> int:
    """Return a localhost port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


# ---------------------------------------------------------------------------
# In-process SSH server
# ---------------------------------------------------------------------------


class _ServerInterface(paramiko.ServerInterface):
    """Authentication and channel policy for :class:`FakeSSHServer`."""

    def __init__(self, client_key: paramiko.PKey):
        self._client_key = client_key

    def get_allowed_auths(self, username):
        return "password,publickey"

    def check_auth_password(self, username, password):
        if username == SSH_USER and password == SSH_PASSWORD:
            return paramiko.AUTH_SUCCESSFUL
        return paramiko.AUTH_FAILED

    def check_auth_publickey(self, username, key):
        if username == SSH_USER and key.get_base64() == self._client_key.get_base64():
            return paramiko.AUTH_SUCCESSFUL
        return paramiko.AUTH_FAILED

    def check_channel_request(self, kind, chanid):
        if kind == "session":
            return paramiko.OPEN_SUCCEEDED
        return paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def check_channel_exec_request(self, channel, command):
        if isinstance(command, bytes):
            command = command.decode()
        threading.Thread(target=_run_scripted, args=(channel, command), daemon=True).start()
        return True


def _run_scripted(channel: paramiko.Channel, command: str) -> None:
    name, _, arg = command.partition(" ")
    try:
        if name == "echo":
            channel.sendall(f"{arg}\n".encode())
            status = 0
        elif name == "sleep":
            time.sleep(float(arg))
            channel.sendall(b"done\n")
            status = 0
        elif name == "fail":
            channel.sendall_stderr(b"boom\n")
            status = 3
        elif name == "spew":
            channel.sendall_stderr(b"x" * int(arg))
            channel.sendall(b"ok\n")
            status = 0
        else:
            channel.sendall_stderr(f"{name}: command not found\n".encode())
            status = 127
        channel.send_exit_status(status)
    except (OSError, EOFError, paramiko.SSHException):
        pass
    finally:
        channel.close()


class FakeSSHServer:
    """A listening SSH server running in background threads.

    Attributes:
        host_key: The server's host key.
        client_key: A key the server accepts for :data:`SSH_USER`.
        port: Bound localhost port.
    """

    def __init__(self, host_key: paramiko.PKey, client_key: paramiko.PKey):
        self.host_key = host_key
        self.client_key = client_key
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(16)
        self.port = self._sock.getsockname()[1]
        self._transports: list[paramiko.Transport] = []
        self._closed = False
        threading.Thread(target=self._accept_loop, daemon=True).start()

    @property
    def address(self) -> str:
        return f"127.0.0.1:{self.port}"

    def known_hosts_line(self, key: paramiko.PKey | None = None, host: str | None = None) -> str:
        """Render a known-hosts entry (defaults: this server's name and key)."""
        key = key or self.host_key
        host = host or f"[127.0.0.1]:{self.port}"
        return f"{host} {key.get_name()} {key.get_base64()}\n"

    def _accept_loop(self) -> None:
        while not self._closed:
            try:
                conn, _addr = self._sock.accept()
            except OSError:
                return
            threading.Thread(target=self._serve, args=(conn,), daemon=True).start()

    def _serve(self, conn: socket.socket) -> None:
        transport = paramiko.Transport(conn)
        self._transports.append(transport)
        transport.add_server_key(self.host_key)
        try:
            transport.start_server(server=_ServerInterface(self.client_key))
        except (paramiko.SSHException, EOFError, OSError):
            transport.close()

    def close(self) -> None:
        self._closed = True
        self._sock.close()
        for transport in self._transports:
            transport.close()


@pytest.fixture(scope="session")
def host_key():
    """RSA host key for the fake server."""
    return paramiko.RSAKey.generate(2048)


@pytest.fixture(scope="session")
def client_key():
    """RSA key the fake server accepts for public-key auth."""
    return paramiko.RSAKey.generate(2048)


@pytest.fixture()
def client_key_path(client_key, tmp_path):
    """Path to *client_key* written as an unencrypted PEM file."""
    path = tmp_path / "id_rsa"
    client_key.write_private_key_file(str(path))
    return str(path)


@pytest.fixture()
def ssh_server(host_key, client_key):
    """A running :class:`FakeSSHServer`, shut down after the test."""
    server = FakeSSHServer(host_key, client_key)
    yield server
    server.close()


@pytest.fixture()
def client():
    """Return a FastAPI :class:`TestClient` for the application."""
    with TestClient(app) as c:
        yield c
