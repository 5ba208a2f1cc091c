"""Connection and pseudo-terminal configuration."""

from dataclasses import dataclass, field
from typing import Dict, Optional

from .auth import Credentials
from .hostkey import HostKeyCallback
from .termmodes import ModeKey

DEFAULT_PORT = 22
DEFAULT_CONNECT_TIMEOUT = 10
DEFAULT_BANNER_TIMEOUT = 15
DEFAULT_AUTH_TIMEOUT = 30


@dataclass
class ClientConfig:
    """Everything needed to dial and authenticate.

    ``host_key_callback`` is required: there is no implicit policy, the
    caller has to choose one of the callbacks in :mod:`sshexec.hostkey`.
    """

    host: str
    credentials: Credentials
    host_key_callback: HostKeyCallback
    port: int = DEFAULT_PORT
    connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT
    banner_timeout: Optional[float] = DEFAULT_BANNER_TIMEOUT
    auth_timeout: Optional[float] = DEFAULT_AUTH_TIMEOUT

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class PtyRequest:
    """Pseudo-terminal request: terminal type, size and mode flags."""

    term: str = "xterm"
    width: int = 80
    height: int = 40
    width_pixels: int = 0
    height_pixels: int = 0
    modes: Dict[ModeKey, int] = field(default_factory=dict)
