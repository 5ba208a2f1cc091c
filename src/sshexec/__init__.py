"""
sshexec

Run commands on remote hosts over SSH, using paramiko for the transport.
Provides pluggable host-key verification, one-session-per-command
execution and the usual output collection variants.
"""

__version__ = "0.1.0"
__author__ = "sshexec developers"

from .auth import Credentials, load_private_key, parse_private_key
from .client import Client, CommandResult, dial
from .config import ClientConfig, PtyRequest
from .errors import (
    AuthenticationError,
    CommandError,
    ConnectError,
    ExitError,
    ExitMissingError,
    HostKeyError,
    HostKeyMismatch,
    KeyLoadError,
    SessionError,
    SessionReuseError,
    SSHExecError,
    UnknownHostKey,
)
from .hostkey import (
    FixedHostKey,
    HostKeyPredicate,
    KnownHostsCallback,
    RecordingHostKey,
    insecure_ignore_host_key,
    parse_public_key,
)
from .session import Session

__all__ = [
    "AuthenticationError",
    "Client",
    "ClientConfig",
    "CommandError",
    "CommandResult",
    "ConnectError",
    "Credentials",
    "ExitError",
    "ExitMissingError",
    "FixedHostKey",
    "HostKeyError",
    "HostKeyMismatch",
    "HostKeyPredicate",
    "KeyLoadError",
    "KnownHostsCallback",
    "PtyRequest",
    "RecordingHostKey",
    "Session",
    "SessionError",
    "SessionReuseError",
    "SSHExecError",
    "UnknownHostKey",
    "dial",
    "insecure_ignore_host_key",
    "load_private_key",
    "parse_private_key",
    "parse_public_key",
]
