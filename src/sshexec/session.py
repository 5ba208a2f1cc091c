"""Sessions: one channel, one remote command.

A :class:`Session` wraps a single paramiko channel. It can run exactly one
command (or shell); running another needs a new session from the same
:class:`~sshexec.client.Client`.

Usage:
    with client.new_session() as session:
        session.stdout = sys.stdout.buffer
        session.run("uname -a")
"""

import io
import logging
import threading
from typing import List, Optional

import paramiko
from paramiko.common import cMSG_CHANNEL_REQUEST

from .config import PtyRequest
from .errors import (
    CommandError,
    ExitError,
    ExitMissingError,
    SessionError,
    SessionReuseError,
)
from .termmodes import encode_modes

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 32768


class Session:
    """A single command-execution channel on an authenticated connection."""

    def __init__(self, channel: paramiko.Channel, host: Optional[str] = None,
                 port: Optional[int] = None):
        self.channel = channel
        self.host = host
        self.port = port
        self.exit_status: Optional[int] = None
        self._stdin = None
        self._stdout = None
        self._stderr = None
        self._stdin_piped = False
        self._stdout_piped = False
        self._stderr_piped = False
        self._combine = False
        self._command: Optional[str] = None
        self._started = False
        self._waited = False
        self._closed = False
        self._copiers: List[threading.Thread] = []
        self._copy_error: Optional[BaseException] = None
        self._lock = threading.Lock()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # Stream wiring; only allowed before the session starts

    @property
    def stdin(self):
        return self._stdin

    @stdin.setter
    def stdin(self, source):
        self._check_configurable("stdin")
        self._stdin = source

    @property
    def stdout(self):
        return self._stdout

    @stdout.setter
    def stdout(self, sink):
        self._check_configurable("stdout")
        self._stdout = sink

    @property
    def stderr(self):
        return self._stderr

    @stderr.setter
    def stderr(self, sink):
        self._check_configurable("stderr")
        self._stderr = sink

    def stdin_pipe(self):
        """Writable file feeding the remote stdin; closing it sends EOF."""
        self._check_configurable("stdin")
        if self._stdin is not None or self._stdin_piped:
            raise self._error(SessionError, "stdin already set")
        self._stdin_piped = True
        return self.channel.makefile_stdin("wb")

    def stdout_pipe(self):
        """Readable file of the remote stdout."""
        self._check_configurable("stdout")
        if self._stdout is not None or self._stdout_piped:
            raise self._error(SessionError, "stdout already set")
        self._stdout_piped = True
        return self.channel.makefile("rb")

    def stderr_pipe(self):
        """Readable file of the remote stderr."""
        self._check_configurable("stderr")
        if self._stderr is not None or self._stderr_piped:
            raise self._error(SessionError, "stderr already set")
        self._stderr_piped = True
        return self.channel.makefile_stderr("rb")

    # Channel requests

    def request_pty(self, pty: Optional[PtyRequest] = None) -> None:
        """Ask the server for a pseudo-terminal.

        paramiko's ``Channel.get_pty`` always sends an empty mode list, so
        when modes are given the pty-req message is built here.
        """
        pty = pty or PtyRequest()
        self._check_configurable("pty")
        try:
            if not pty.modes:
                self.channel.get_pty(
                    term=pty.term,
                    width=pty.width,
                    height=pty.height,
                    width_pixels=pty.width_pixels,
                    height_pixels=pty.height_pixels,
                )
            else:
                self._send_pty_request(pty)
        except paramiko.SSHException as e:
            raise self._error(SessionError, f"pty request failed: {e}") from e
        logger.debug(f"Allocated {pty.term} pty {pty.width}x{pty.height}")

    def _send_pty_request(self, pty: PtyRequest) -> None:
        """Send pty-req with encoded modes and wait for the reply.

        Relies on paramiko internals: ``Channel._event_pending``,
        ``Channel._wait_for_event`` and ``Transport._send_user_message``.
        ``Channel.get_pty`` guards these with ``@open_only``, so the same
        check is made here first.
        """
        if self.channel.closed or not self.channel.active:
            raise self._error(SessionError, "pty request failed: channel is not open")
        m = paramiko.Message()
        m.add_byte(cMSG_CHANNEL_REQUEST)
        m.add_int(self.channel.remote_chanid)
        m.add_string("pty-req")
        m.add_boolean(True)
        m.add_string(pty.term)
        m.add_int(pty.width)
        m.add_int(pty.height)
        m.add_int(pty.width_pixels)
        m.add_int(pty.height_pixels)
        m.add_string(encode_modes(pty.modes))
        self.channel._event_pending()
        self.channel.transport._send_user_message(m)
        self.channel._wait_for_event()

    def setenv(self, name: str, value: str) -> None:
        """Set an environment variable for the command.

        paramiko sends env requests without asking for a reply, so a server
        that ignores them is not reported.
        """
        self._check_configurable("environment")
        self.channel.set_environment_variable(name, value)

    def window_change(self, height: int, width: int) -> None:
        """Tell the server the terminal was resized."""
        if self._closed:
            raise self._error(SessionError, "session closed")
        try:
            self.channel.resize_pty(width=width, height=height)
        except paramiko.SSHException as e:
            raise self._error(SessionError, f"window change failed: {e}") from e

    # Execution

    def start(self, command: str) -> None:
        """Start ``command`` and leave its I/O streaming."""
        self._claim()
        self._command = command
        try:
            if self._combine:
                self.channel.set_combine_stderr(True)
            self.channel.exec_command(command)
        except paramiko.SSHException as e:
            raise self._error(SessionError, f"exec request failed: {e}") from e
        logger.debug(f"Started command on {self.host}: {command[:50]}")
        self._start_copiers()

    def shell(self) -> None:
        """Start a login shell and leave its I/O streaming."""
        self._claim()
        try:
            self.channel.invoke_shell()
        except paramiko.SSHException as e:
            raise self._error(SessionError, f"shell request failed: {e}") from e
        logger.debug(f"Started shell on {self.host}")
        self._start_copiers()

    def wait(self) -> None:
        """Block until the remote command exits.

        Raises:
            ExitError: the command exited with a non-zero status
            ExitMissingError: the channel closed without an exit status
        """
        if not self._started:
            raise self._error(SessionError, "session not started")
        if self._waited:
            raise self._error(SessionError, "wait already called")
        self._waited = True

        for copier in self._copiers:
            copier.join()
        status = self.channel.recv_exit_status()

        if self._copy_error is not None:
            error = self._error(SessionError, f"copying output failed: {self._copy_error}")
            raise error from self._copy_error
        if status == -1:
            raise ExitMissingError(self._command, self.host, self.port)
        self.exit_status = status
        if status != 0:
            raise ExitError(status, self._command, self.host, self.port)

    def run(self, command: str) -> None:
        """Run ``command`` to completion.

        Output goes to the sinks attached beforehand and is discarded
        otherwise.
        """
        self.start(command)
        self.wait()

    def output(self, command: str) -> bytes:
        """Run ``command`` and return its stdout."""
        self._check_unused()
        if self._stdout is not None or self._stdout_piped:
            raise self._error(SessionError, "stdout already set")
        buf = io.BytesIO()
        self._stdout = buf
        try:
            self.run(command)
        except CommandError as e:
            e.output = buf.getvalue()
            raise
        return buf.getvalue()

    def combined_output(self, command: str) -> bytes:
        """Run ``command`` and return stdout and stderr merged in arrival order."""
        self._check_unused()
        if self._stdout is not None or self._stdout_piped:
            raise self._error(SessionError, "stdout already set")
        if self._stderr is not None or self._stderr_piped:
            raise self._error(SessionError, "stderr already set")
        buf = io.BytesIO()
        self._stdout = buf
        self._combine = True
        try:
            self.run(command)
        except CommandError as e:
            e.output = buf.getvalue()
            raise
        return buf.getvalue()

    def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.channel.close()
        logger.debug(f"Session on {self.host} closed")

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    # Internals

    def _error(self, cls, message):
        return cls(message, host=self.host, port=self.port)

    def _check_unused(self) -> None:
        if self._closed:
            raise self._error(SessionError, "session closed")
        if self._started:
            raise self._error(SessionReuseError, "session already started")

    def _check_configurable(self, what: str) -> None:
        if self._closed:
            raise self._error(SessionError, "session closed")
        if self._started:
            raise self._error(SessionError, f"cannot set {what} after session started")

    def _claim(self) -> None:
        with self._lock:
            self._check_unused()
            self._started = True

    def _start_copiers(self) -> None:
        if not self._stdout_piped:
            self._spawn(self._copy_out, self.channel.recv, self._stdout, "stdout")
        if not self._stderr_piped and not self._combine:
            self._spawn(self._copy_out, self.channel.recv_stderr, self._stderr, "stderr")
        if self._stdin_piped:
            return
        if self._stdin is None:
            self.channel.shutdown_write()
            return
        feeder = threading.Thread(target=self._copy_in, args=(self._stdin,))
        feeder.daemon = True
        feeder.start()

    def _spawn(self, target, recv, sink, name) -> None:
        copier = threading.Thread(target=target, args=(recv, sink, name))
        copier.daemon = True
        copier.start()
        self._copiers.append(copier)

    def _copy_out(self, recv, sink, name) -> None:
        """Drain one output stream into ``sink`` until EOF."""
        while True:
            data = recv(COPY_BUFFER_SIZE)
            if not data:
                break
            if sink is None or self._copy_error is not None:
                continue
            try:
                sink.write(data)
                if hasattr(sink, "flush"):
                    sink.flush()
            except Exception as e:
                logger.error(f"Writing remote {name} failed: {e}")
                self._copy_error = e

    def _copy_in(self, source) -> None:
        """Feed ``source`` to the remote stdin, then send EOF."""
        read = getattr(source, "read1", source.read)
        try:
            while True:
                data = read(COPY_BUFFER_SIZE)
                if not data:
                    break
                if isinstance(data, str):
                    data = data.encode()
                self.channel.sendall(data)
            self.channel.shutdown_write()
        except OSError as e:
            # remote side exited before consuming all input
            logger.debug(f"Stopped feeding stdin to {self.host}: {e}")
