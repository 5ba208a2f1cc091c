"""Host-key verification policies.

A host-key callback is any callable taking ``(hostname, address, key)``.
Returning accepts the key; raising :class:`HostKeyError` rejects it and
aborts the connection before authentication.

``hostname`` is the name paramiko uses for known_hosts lookups (``host``
on port 22, ``[host]:port`` otherwise), ``address`` is the peer socket
address and ``key`` is the server's ``paramiko.PKey``.
"""

import binascii
import logging
import os
import threading
from typing import Callable, List, Optional, Tuple, Union

import paramiko
from paramiko.hostkeys import HostKeyEntry, InvalidHostKey

from .errors import HostKeyError, HostKeyMismatch, KeyLoadError, UnknownHostKey

logger = logging.getLogger(__name__)

HostKeyCallback = Callable[[str, object, paramiko.PKey], None]


def key_bytes(key: Union[paramiko.PKey, bytes]) -> bytes:
    """Serialized public key blob of ``key``."""
    if isinstance(key, (bytes, bytearray)):
        return bytes(key)
    return key.asbytes()


def authorized_key_line(key: paramiko.PKey) -> str:
    """Render ``key`` as an OpenSSH public key line."""
    return f"{key.get_name()} {key.get_base64()}"


def parse_public_key(line: str) -> paramiko.PKey:
    """Parse an OpenSSH public key line (``type base64 [comment]``)."""
    try:
        entry = HostKeyEntry.from_line(f"pinned {line.strip()}")
    except (InvalidHostKey, binascii.Error, ValueError, paramiko.SSHException) as e:
        raise KeyLoadError(f"invalid public key: {e}") from e
    if entry is None or entry.key is None:
        raise KeyLoadError(f"unsupported public key line: {line.strip()[:40]}")
    return entry.key


def insecure_ignore_host_key() -> HostKeyCallback:
    """Accept any host key.

    Insecure: this trusts whoever answers on the address. Only use it for
    disposable or test targets.
    """

    def accept(hostname, address, key):
        logger.debug(f"Accepting {key.get_name()} host key for {hostname} unchecked")

    return accept


class FixedHostKey:
    """Accept only a single pinned key.

    Comparison is on the serialized public blob; any difference rejects.
    """

    def __init__(self, key: Union[paramiko.PKey, bytes]):
        self.expected = key_bytes(key)

    def __call__(self, hostname, address, key):
        offered = key_bytes(key)
        if offered != self.expected:
            raise HostKeyMismatch(
                "host key does not match the pinned key",
                hostname=hostname,
                address=address,
                key=key,
            )


class HostKeyPredicate:
    """Adapt a predicate returning a bool into a host-key callback."""

    def __init__(self, predicate: Callable[[str, object, paramiko.PKey], bool],
                 reason: str = "rejected by host key predicate"):
        self.predicate = predicate
        self.reason = reason

    def __call__(self, hostname, address, key):
        if not self.predicate(hostname, address, key):
            raise HostKeyError(self.reason, hostname=hostname, address=address, key=key)


class RecordingHostKey:
    """Record every presented key, then defer to ``inner``.

    With no ``inner`` callback every key is accepted. Useful for learning a
    server's key on first contact so it can be pinned afterwards.
    """

    def __init__(self, inner: Optional[HostKeyCallback] = None):
        self.inner = inner
        self.seen: List[Tuple[str, object, paramiko.PKey]] = []
        self._lock = threading.Lock()

    def __call__(self, hostname, address, key):
        with self._lock:
            self.seen.append((hostname, address, key))
        logger.info(f"Host {hostname} presented {key.get_name()} key")
        if self.inner is not None:
            self.inner(hostname, address, key)

    @property
    def last_key(self) -> Optional[paramiko.PKey]:
        with self._lock:
            return self.seen[-1][2] if self.seen else None


class KnownHostsCallback:
    """Check keys against an OpenSSH known_hosts file."""

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)
        self.host_keys = paramiko.HostKeys()
        if os.path.exists(self.path):
            try:
                self.host_keys.load(self.path)
            except (OSError, InvalidHostKey) as e:
                raise KeyLoadError(f"cannot read known hosts {self.path}: {e}") from e
        else:
            logger.debug(f"Known hosts file {self.path} does not exist")

    def __call__(self, hostname, address, key):
        known = self.host_keys.lookup(hostname)
        if known is None and address:
            known = self.host_keys.lookup(_address_name(address))
        if not known:
            raise UnknownHostKey(
                f"no known key in {self.path}",
                hostname=hostname,
                address=address,
                key=key,
            )
        offered = key.asbytes()
        for name in known.keys():
            if known[name].asbytes() == offered:
                return
        raise HostKeyMismatch(
            f"key differs from the one recorded in {self.path}",
            hostname=hostname,
            address=address,
            key=key,
        )


class CallbackPolicy(paramiko.MissingHostKeyPolicy):
    """paramiko policy that hands every host-key decision to a callback."""

    def __init__(self, callback: HostKeyCallback):
        self.callback = callback

    def missing_host_key(self, client, hostname, key):
        transport = client.get_transport()
        address = transport.getpeername() if transport is not None else None
        try:
            self.callback(hostname, address, key)
        except HostKeyError:
            raise
        except Exception as e:
            raise HostKeyError(str(e), hostname=hostname, address=address, key=key) from e


def _address_name(address) -> str:
    ip, port = address[0], address[1]
    if port == 22:
        return ip
    return f"[{ip}]:{port}"
