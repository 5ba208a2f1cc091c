"""Encoded terminal modes for pty requests (RFC 4254 section 8).

Each mode is an opcode byte followed by a uint32 value; the list is
terminated by ``TTY_OP_END``.
"""

import struct
from typing import Dict, Mapping, Union

TTY_OP_END = 0

VINTR = 1
VQUIT = 2
VERASE = 3
VKILL = 4
VEOF = 5
VEOL = 6
VEOL2 = 7
VSTART = 8
VSTOP = 9
VSUSP = 10
VDSUSP = 11
VREPRINT = 12
VWERASE = 13
VLNEXT = 14
VFLUSH = 15
VSWTCH = 16
VSTATUS = 17
VDISCARD = 18
IGNPAR = 30
PARMRK = 31
INPCK = 32
ISTRIP = 33
INLCR = 34
IGNCR = 35
ICRNL = 36
IUCLC = 37
IXON = 38
IXANY = 39
IXOFF = 40
IMAXBEL = 41
IUTF8 = 42
ISIG = 50
ICANON = 51
XCASE = 52
ECHO = 53
ECHOE = 54
ECHOK = 55
ECHONL = 56
NOFLSH = 57
TOSTOP = 58
IEXTEN = 59
ECHOCTL = 60
ECHOKE = 61
PENDIN = 62
OPOST = 70
OLCUC = 71
ONLCR = 72
OCRNL = 73
ONOCR = 74
ONLRET = 75
CS7 = 90
CS8 = 91
PARENB = 92
PARODD = 93
TTY_OP_ISPEED = 128
TTY_OP_OSPEED = 129


def _mode_names(namespace) -> Dict[str, int]:
    return {
        name: value
        for name, value in namespace.items()
        if name.isupper() and isinstance(value, int) and name != "TTY_OP_END"
    }


MODE_NAMES = _mode_names(dict(globals()))

# Opcodes 160 and above are reserved and must not be sent
MAX_OPCODE = 159
MAX_VALUE = 0xFFFFFFFF

ModeKey = Union[int, str]


def opcode(mode: ModeKey) -> int:
    """Resolve a mode name or number to its opcode."""
    if isinstance(mode, str):
        try:
            return MODE_NAMES[mode.upper()]
        except KeyError:
            raise ValueError(f"unknown terminal mode {mode!r}") from None
    if not 1 <= mode <= MAX_OPCODE:
        raise ValueError(f"terminal mode opcode {mode} out of range")
    return mode


def encode_modes(modes: Mapping[ModeKey, int]) -> bytes:
    """Encode ``modes`` in insertion order, terminated by TTY_OP_END."""
    out = bytearray()
    for mode, value in modes.items():
        if not 0 <= value <= MAX_VALUE:
            raise ValueError(f"terminal mode value {value} out of range")
        out += struct.pack(">BI", opcode(mode), value)
    out.append(TTY_OP_END)
    return bytes(out)


def decode_modes(blob: bytes) -> Dict[int, int]:
    """Decode an encoded mode list into ``{opcode: value}``."""
    modes: Dict[int, int] = {}
    i = 0
    while i < len(blob):
        op = blob[i]
        if op == TTY_OP_END:
            break
        if op > MAX_OPCODE:
            raise ValueError(f"terminal mode opcode {op} out of range")
        if i + 5 > len(blob):
            raise ValueError("truncated terminal mode list")
        (value,) = struct.unpack(">I", blob[i + 1:i + 5])
        modes[op] = value
        i += 5
    return modes
