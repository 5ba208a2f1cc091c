"""Connection step: dial, verify the host key, authenticate."""

import io
import logging
from dataclasses import dataclass
from typing import Optional

import paramiko

from .config import ClientConfig
from .errors import (
    AuthenticationError,
    ConnectError,
    ExitError,
    SessionError,
)
from .hostkey import CallbackPolicy
from .session import Session

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result of :meth:`Client.execute`."""

    stdout: bytes
    stderr: bytes
    exit_status: int

    @property
    def success(self) -> bool:
        return self.exit_status == 0

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


class Client:
    """An authenticated SSH connection.

    Sessions opened with :meth:`new_session` share the connection; each runs
    one command. Close the client (or use it as a context manager) to
    release the transport.
    """

    def __init__(self, ssh_client: paramiko.SSHClient, config: ClientConfig):
        self.ssh_client = ssh_client
        self.config = config

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def transport(self) -> Optional[paramiko.Transport]:
        if self.ssh_client is None:
            return None
        return self.ssh_client.get_transport()

    @property
    def remote_address(self):
        transport = self.transport
        return transport.getpeername() if transport is not None else None

    @property
    def server_key(self) -> Optional[paramiko.PKey]:
        transport = self.transport
        return transport.get_remote_server_key() if transport is not None else None

    def is_active(self) -> bool:
        transport = self.transport
        return transport is not None and transport.is_active()

    def new_session(self) -> Session:
        """Open a new channel for one command."""
        host, port = self.config.host, self.config.port
        if not self.is_active():
            raise SessionError("connection is closed", host=host, port=port)
        try:
            channel = self.transport.open_session(timeout=self.config.connect_timeout)
        except (paramiko.SSHException, OSError) as e:
            raise SessionError(f"failed to open session: {e}", host=host, port=port) from e
        logger.debug(f"Opened channel {channel.get_id()} to {host}:{port}")
        return Session(channel, host=host, port=port)

    def execute(self, command: str, check: bool = True, stdin=None) -> CommandResult:
        """Run ``command`` in a fresh session and capture its output.

        Raises:
            ExitError: non-zero exit and ``check`` is set
        """
        stdout, stderr = io.BytesIO(), io.BytesIO()
        with self.new_session() as session:
            session.stdout = stdout
            session.stderr = stderr
            session.stdin = stdin
            try:
                session.run(command)
                exit_status = 0
            except ExitError as e:
                if check:
                    e.output = stdout.getvalue()
                    raise
                exit_status = e.exit_status
        return CommandResult(stdout.getvalue(), stderr.getvalue(), exit_status)

    def close(self) -> None:
        """Close the connection and every session on it."""
        if self.ssh_client is not None:
            self.ssh_client.close()
            self.ssh_client = None
            logger.info(f"Disconnected from {self.config.host}:{self.config.port}")


def dial(config: ClientConfig) -> Client:
    """Connect to ``config.host``, verify its key and authenticate.

    Host-key rejection aborts before authentication. Nothing is retried.

    Raises:
        ConnectError: transport could not be established
        HostKeyError: the host-key callback rejected the server
        AuthenticationError: credentials missing or rejected
        KeyLoadError: the private key file could not be loaded
    """
    credentials = config.credentials
    credentials.validate()
    pkey = credentials.resolve_key()

    ssh_client = paramiko.SSHClient()
    ssh_client.set_missing_host_key_policy(CallbackPolicy(config.host_key_callback))
    try:
        _connect(ssh_client, config, pkey)
    except BaseException as e:
        ssh_client.close()
        logger.error(f"Failed to connect to {config.host}:{config.port}: {e}")
        raise

    logger.info(f"Connected to {credentials.username}@{config.host}:{config.port}")
    return Client(ssh_client, config)


def _connect(ssh_client: paramiko.SSHClient, config: ClientConfig,
             pkey: Optional[paramiko.PKey]) -> None:
    host, port = config.host, config.port
    credentials = config.credentials
    try:
        ssh_client.connect(
            hostname=host,
            port=port,
            username=credentials.username,
            password=credentials.password,
            pkey=pkey,
            look_for_keys=False,
            allow_agent=False,
            timeout=config.connect_timeout,
            banner_timeout=config.banner_timeout,
            auth_timeout=config.auth_timeout,
        )
    except paramiko.AuthenticationException as e:
        raise AuthenticationError(
            f"authentication failed for {credentials.username}@{host}:{port}: {e}",
            host=host,
            port=port,
        ) from e
    except paramiko.SSHException as e:
        raise ConnectError(f"SSH handshake with {host}:{port} failed: {e}",
                           host=host, port=port) from e
    except OSError as e:
        raise ConnectError(f"cannot connect to {host}:{port}: {e}", host=host, port=port) from e
