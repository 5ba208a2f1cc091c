"""In-process SSH server for tests and demos.

LoopbackServer listens on 127.0.0.1, authenticates against configured
users and keys, and answers exec requests from a table of scripted
commands. It records what clients asked for so tests can assert on it.
"""

import logging
import socket
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union

import paramiko

logger = logging.getLogger(__name__)

# Delay before writing to an exec channel so the request reply goes out first
REPLY_GRACE = 0.05


@dataclass
class CommandReply:
    """Scripted response to one command. ``exit_status=None`` sends none."""

    stdout: bytes = b""
    stderr: bytes = b""
    exit_status: Optional[int] = 0


# A command is either a fixed reply or a function of the stdin bytes
Command = Union[CommandReply, Callable[[bytes], CommandReply]]


@dataclass
class PtyRecord:
    term: str
    width: int
    height: int
    modes: bytes


class LoopbackServer:
    """Scripted SSH server on a loopback port."""

    def __init__(self, users: Optional[Dict[str, str]] = None,
                 authorized_keys: Optional[List[paramiko.PKey]] = None,
                 commands: Optional[Dict[str, Command]] = None,
                 host: str = "127.0.0.1", port: int = 0,
                 host_key: Optional[paramiko.PKey] = None):
        self.host = host
        self.port = port
        self.users = dict(users or {})
        self.authorized_keys = [key.asbytes() for key in authorized_keys or []]
        self.commands: Dict[str, Command] = dict(commands or {})
        self.host_key = host_key or paramiko.RSAKey.generate(2048)
        self.running = False
        self.server_socket = None
        self.active_connections: Dict[str, paramiko.Transport] = {}
        self.sessions_opened = 0
        self.commands_run: List[str] = []
        self.pty_requests: List[PtyRecord] = []
        self.env_requests: List[tuple] = []
        self.window_changes: List[tuple] = []
        self._lock = threading.Lock()
        self._thread = None

    def __enter__(self) -> "LoopbackServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def start(self):
        """Bind and start accepting connections in a background thread."""
        self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.server_socket.bind((self.host, self.port))
        self.port = self.server_socket.getsockname()[1]
        self.server_socket.listen(100)
        self.running = True
        self._thread = threading.Thread(target=self._serve)
        self._thread.daemon = True
        self._thread.start()
        logger.info(f"Loopback SSH server listening on {self.host}:{self.port}")

    def stop(self):
        """Stop the server and drop every connection."""
        self.running = False
        if self.server_socket:
            self.server_socket.close()
        with self._lock:
            transports = list(self.active_connections.values())
            self.active_connections.clear()
        for transport in transports:
            transport.close()
        logger.info("Loopback SSH server stopped")

    def _serve(self):
        while self.running:
            try:
                client_socket, addr = self.server_socket.accept()
            except OSError as e:
                if self.running:
                    logger.error(f"Error accepting connection: {e}")
                break
            logger.debug(f"Connection from {addr}")
            thread = threading.Thread(target=self._handle_connection, args=(client_socket, addr))
            thread.daemon = True
            thread.start()

    def _handle_connection(self, client_socket, addr):
        conn_id = f"{addr[0]}:{addr[1]}"
        transport = paramiko.Transport(client_socket)
        # Held until the transport ends; a dropped Channel closes itself
        channels: List[paramiko.Channel] = []
        try:
            transport.add_server_key(self.host_key)
            transport.start_server(server=_ServerInterface(self))
            with self._lock:
                self.active_connections[conn_id] = transport
            while self.running and transport.is_active():
                channel = transport.accept(1)
                if channel is not None:
                    channels.append(channel)
        except (paramiko.SSHException, EOFError, OSError) as e:
            logger.debug(f"Connection {conn_id} ended: {e}")
        finally:
            transport.close()
            with self._lock:
                self.active_connections.pop(conn_id, None)

    def _run_command(self, channel: paramiko.Channel, command: str):
        time.sleep(REPLY_GRACE)
        reply = self.commands.get(command)
        if reply is None:
            reply = CommandReply(stderr=f"{command}: command not found\n".encode(), exit_status=127)
        elif callable(reply):
            reply = reply(_read_all(channel))
        try:
            if reply.stdout:
                channel.sendall(reply.stdout)
            if reply.stderr:
                channel.sendall_stderr(reply.stderr)
            if reply.exit_status is not None:
                channel.send_exit_status(reply.exit_status)
        finally:
            channel.close()

    def _echo_shell(self, channel: paramiko.Channel):
        """Echo input back until a line reading ``exit``."""
        time.sleep(REPLY_GRACE)
        received = b""
        try:
            while True:
                data = channel.recv(1024)
                if not data:
                    break
                channel.sendall(data)
                received += data
                if b"exit\n" in received or b"exit\r" in received:
                    break
            channel.send_exit_status(0)
        finally:
            channel.close()


class _ServerInterface(paramiko.ServerInterface):
    """Authentication and channel policy for LoopbackServer."""

    def __init__(self, server: LoopbackServer):
        self.server = server

    def get_allowed_auths(self, username):
        return "password,publickey"

    def check_auth_password(self, username, password):
        if self.server.users.get(username) == password:
            return paramiko.AUTH_SUCCESSFUL
        logger.info(f"Password auth failed for user: {username}")
        return paramiko.AUTH_FAILED

    def check_auth_publickey(self, username, key):
        if key.asbytes() in self.server.authorized_keys:
            return paramiko.AUTH_SUCCESSFUL
        return paramiko.AUTH_FAILED

    def check_channel_request(self, kind, chanid):
        if kind == "session":
            with self.server._lock:
                self.server.sessions_opened += 1
            return paramiko.OPEN_SUCCEEDED
        return paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def check_channel_pty_request(self, channel, term, width, height, pixelwidth, pixelheight, modes):
        self.server.pty_requests.append(PtyRecord(_text(term), width, height, bytes(modes)))
        return True

    def check_channel_env_request(self, channel, name, value):
        self.server.env_requests.append((_text(name), _text(value)))
        return True

    def check_channel_window_change_request(self, channel, width, height, pixelwidth, pixelheight):
        self.server.window_changes.append((width, height))
        return True

    def check_channel_exec_request(self, channel, command):
        command = _text(command)
        self.server.commands_run.append(command)
        thread = threading.Thread(target=self.server._run_command, args=(channel, command))
        thread.daemon = True
        thread.start()
        return True

    def check_channel_shell_request(self, channel):
        thread = threading.Thread(target=self.server._echo_shell, args=(channel,))
        thread.daemon = True
        thread.start()
        return True


def _read_all(channel: paramiko.Channel) -> bytes:
    chunks = []
    while True:
        data = channel.recv(4096)
        if not data:
            break
        chunks.append(data)
    return b"".join(chunks)


def _text(value) -> str:
    return value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value
