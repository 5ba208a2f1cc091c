"""Error hierarchy for sshexec.

Every step (connect, authenticate, open session, configure I/O, execute)
raises one of these. Nothing is retried.
"""

from typing import Optional


class SSHExecError(Exception):
    """Base exception for all sshexec errors."""

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ):
        super().__init__(message)
        self.host = host
        self.port = port


class ConnectError(SSHExecError):
    """Raised when the transport cannot be established."""

    pass


class AuthenticationError(SSHExecError):
    """Raised when the server rejects the credentials, or none are usable."""

    pass


class HostKeyError(SSHExecError):
    """Raised when a host-key callback rejects the key offered by the server."""

    def __init__(
        self,
        reason: str,
        hostname: Optional[str] = None,
        address=None,
        key=None,
    ):
        super().__init__(f"host key rejected for {hostname}: {reason}", host=hostname)
        self.reason = reason
        self.hostname = hostname
        self.address = address
        self.key = key


class HostKeyMismatch(HostKeyError):
    """The offered key differs from the pinned or known key."""

    pass


class UnknownHostKey(HostKeyError):
    """No key is known for the host."""

    pass


class SessionError(SSHExecError):
    """Raised when a session cannot be opened, configured, or is misused."""

    pass


class SessionReuseError(SessionError):
    """Raised when a second command is issued on an already used session."""

    pass


class CommandError(SSHExecError):
    """Base for remote command execution failures."""

    pass


class ExitError(CommandError):
    """Raised when the remote command exits with a non-zero status.

    ``output`` holds whatever was captured before the exit, when the
    variant that raised captures output.
    """

    def __init__(
        self,
        exit_status: int,
        command: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ):
        super().__init__(f"Process exited with status {exit_status}", host, port)
        self.exit_status = exit_status
        self.command = command
        self.output: Optional[bytes] = None


class ExitMissingError(CommandError):
    """Raised when the remote side closed without reporting an exit status."""

    def __init__(
        self,
        command: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ):
        super().__init__("remote command exited without exit status", host, port)
        self.command = command
        self.output: Optional[bytes] = None


class KeyLoadError(SSHExecError):
    """Raised when key material cannot be parsed."""

    pass
