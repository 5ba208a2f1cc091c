"""Credentials and private key loading."""

import io
import logging
import os
from dataclasses import dataclass
from typing import Optional

import paramiko

from .errors import AuthenticationError, KeyLoadError

logger = logging.getLogger(__name__)

# Tried in order when the key type is not known up front
KEY_CLASSES = (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)


@dataclass
class Credentials:
    """Username plus exactly the credential the caller supplied.

    Agent and ~/.ssh key discovery are never used.
    """

    username: str
    password: Optional[str] = None
    private_key: Optional[paramiko.PKey] = None
    key_filename: Optional[str] = None
    passphrase: Optional[str] = None

    def validate(self) -> None:
        if not self.username:
            raise AuthenticationError("username is required")
        if self.password is None and self.private_key is None and not self.key_filename:
            raise AuthenticationError(
                f"no password or private key given for user {self.username}"
            )

    def resolve_key(self) -> Optional[paramiko.PKey]:
        """Private key to authenticate with, loading ``key_filename`` if needed."""
        if self.private_key is not None:
            return self.private_key
        if self.key_filename:
            return load_private_key(self.key_filename, self.passphrase)
        return None


def parse_private_key(text: str, passphrase: Optional[str] = None) -> paramiko.PKey:
    """Parse PEM/OpenSSH private key text."""
    last_error: Optional[Exception] = None
    for key_class in KEY_CLASSES:
        try:
            return key_class.from_private_key(io.StringIO(text), password=passphrase)
        except paramiko.PasswordRequiredException as e:
            raise KeyLoadError("private key is encrypted and no passphrase was given") from e
        except (paramiko.SSHException, ValueError) as e:
            last_error = e
    raise KeyLoadError(f"unable to parse private key: {last_error}")


def load_private_key(path: str, passphrase: Optional[str] = None) -> paramiko.PKey:
    """Read and parse a private key file."""
    path = os.path.expanduser(path)
    try:
        with open(path, "r") as f:
            text = f.read()
    except OSError as e:
        raise KeyLoadError(f"cannot read private key {path}: {e}") from e
    key = parse_private_key(text, passphrase)
    logger.debug(f"Loaded {key.get_name()} private key from {path}")
    return key
