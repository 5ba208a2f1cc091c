import io

import pytest

from sshexec import termmodes
from sshexec.client import dial
from sshexec.config import PtyRequest
from sshexec.errors import ExitError, ExitMissingError, SessionError, SessionReuseError
from sshexec.termmodes import decode_modes


@pytest.fixture
def client(server, config):
    """Connected client; closed after the test"""
    client = dial(config)
    yield client
    client.close()


class TestOutputVariants:
    """The four ways of running a command"""

    def test_run_streams_into_attached_sinks(self, client):
        out, err = io.BytesIO(), io.BytesIO()
        with client.new_session() as session:
            session.stdout = out
            session.stderr = err
            session.run("both")
            assert session.exit_status == 0
        assert out.getvalue() == b"out line\n"
        assert err.getvalue() == b"err line\n"

    def test_run_without_sinks_discards_output(self, client):
        with client.new_session() as session:
            session.run("both")
            assert session.exit_status == 0

    def test_output_returns_stdout_only(self, client):
        with client.new_session() as session:
            assert session.output("both") == b"out line\n"

    def test_combined_matches_separate_capture(self, client):
        out, err = io.BytesIO(), io.BytesIO()
        with client.new_session() as session:
            session.stdout = out
            session.stderr = err
            session.run("both")
        with client.new_session() as session:
            combined = session.combined_output("both")
        assert combined == out.getvalue() + err.getvalue()

    def test_start_then_wait(self, client):
        out = io.BytesIO()
        with client.new_session() as session:
            session.stdout = out
            session.start("echo hello")
            assert session.started
            session.wait()
        assert out.getvalue() == b"hello\n"


class TestSessionReuse:
    """A session runs one command; the second attempt fails fast"""

    @pytest.mark.parametrize("second", [
        lambda s: s.run("echo hello"),
        lambda s: s.start("echo hello"),
        lambda s: s.output("echo hello"),
        lambda s: s.combined_output("echo hello"),
        lambda s: s.shell(),
    ])
    def test_second_command_raises(self, server, client, second):
        with client.new_session() as session:
            session.output("echo hello")
            with pytest.raises(SessionReuseError):
                second(session)
        assert server.commands_run == ["echo hello"]

    def test_new_session_on_same_connection_works(self, server, client):
        with client.new_session() as session:
            session.run("echo hello")
        with client.new_session() as session:
            assert session.output("echo hello") == b"hello\n"
        assert server.sessions_opened == 2

    def test_closed_session_cannot_start(self, client):
        session = client.new_session()
        session.close()
        session.close()
        assert session.closed
        with pytest.raises(SessionError):
            session.run("echo hello")

    def test_wait_twice(self, client):
        with client.new_session() as session:
            session.run("echo hello")
            with pytest.raises(SessionError):
                session.wait()

    def test_wait_before_start(self, client):
        with client.new_session() as session:
            with pytest.raises(SessionError):
                session.wait()


class TestExitStatus:

    def test_nonzero_exit_raises(self, client):
        with client.new_session() as session:
            with pytest.raises(ExitError) as excinfo:
                session.run("fail")
        assert excinfo.value.exit_status == 3
        assert "status 3" in str(excinfo.value)

    def test_combined_output_attached_to_error(self, client):
        with client.new_session() as session:
            with pytest.raises(ExitError) as excinfo:
                session.combined_output("fail")
        assert excinfo.value.output == b"boom\n"

    def test_output_attached_to_error(self, client):
        with client.new_session() as session:
            with pytest.raises(ExitError) as excinfo:
                session.output("fail")
        assert excinfo.value.output == b""

    def test_missing_exit_status(self, client):
        with client.new_session() as session:
            with pytest.raises(ExitMissingError) as excinfo:
                session.output("noexit")
        assert excinfo.value.output == b"partial"


class TestStreams:

    def test_stdin_source_is_fed_then_closed(self, client):
        with client.new_session() as session:
            session.stdin = io.BytesIO(b"line one\nline two\n")
            assert session.output("cat") == b"line one\nline two\n"

    def test_stdin_pipe(self, client):
        out = io.BytesIO()
        with client.new_session() as session:
            stdin = session.stdin_pipe()
            session.stdout = out
            session.start("cat")
            stdin.write(b"piped")
            stdin.close()
            session.wait()
        assert out.getvalue() == b"piped"

    def test_stdout_pipe(self, client):
        with client.new_session() as session:
            stdout = session.stdout_pipe()
            session.start("echo hello")
            assert stdout.read() == b"hello\n"
            session.wait()

    def test_stderr_pipe(self, client):
        with client.new_session() as session:
            stderr = session.stderr_pipe()
            session.start("both")
            assert stderr.read() == b"err line\n"
            session.wait()

    def test_output_refuses_preset_stdout(self, client):
        with client.new_session() as session:
            session.stdout = io.BytesIO()
            with pytest.raises(SessionError):
                session.output("echo hello")

    def test_combined_refuses_preset_stderr(self, client):
        with client.new_session() as session:
            session.stderr = io.BytesIO()
            with pytest.raises(SessionError):
                session.combined_output("echo hello")

    def test_pipe_after_sink_refused(self, client):
        with client.new_session() as session:
            session.stdout = io.BytesIO()
            with pytest.raises(SessionError):
                session.stdout_pipe()

    def test_cannot_rewire_after_start(self, client):
        with client.new_session() as session:
            session.run("echo hello")
            with pytest.raises(SessionError):
                session.stdout = io.BytesIO()
            with pytest.raises(SessionError):
                session.request_pty()


class TestChannelRequests:

    def test_pty_request_carries_modes(self, server, client):
        pty = PtyRequest(term="vt100", width=132, height=50,
                         modes={termmodes.ECHO: 0, "TTY_OP_ISPEED": 14400})
        with client.new_session() as session:
            session.request_pty(pty)
            session.run("echo hello")
        record = server.pty_requests[0]
        assert (record.term, record.width, record.height) == ("vt100", 132, 50)
        assert decode_modes(record.modes) == {termmodes.ECHO: 0, termmodes.TTY_OP_ISPEED: 14400}

    def test_pty_request_without_modes(self, server, client):
        with client.new_session() as session:
            session.request_pty()
            session.run("echo hello")
        record = server.pty_requests[0]
        assert record.term == "xterm"
        assert decode_modes(record.modes) == {}

    def test_setenv(self, server, client):
        with client.new_session() as session:
            session.setenv("LANG", "C.UTF-8")
            session.run("echo hello")
        assert server.env_requests == [("LANG", "C.UTF-8")]

    def test_interactive_shell(self, server, client):
        out = io.BytesIO()
        with client.new_session() as session:
            session.request_pty(PtyRequest(term="vt100"))
            stdin = session.stdin_pipe()
            session.stdout = out
            session.shell()
            session.window_change(50, 132)
            stdin.write(b"hello\nexit\n")
            stdin.close()
            session.wait()
        assert out.getvalue() == b"hello\nexit\n"
        assert server.window_changes == [(132, 50)]


class TestConnectionReuse:

    def test_sessions_in_a_row_on_one_connection(self, server, client):
        for _ in range(5):
            with client.new_session() as session:
                assert session.output("echo hello") == b"hello\n"
        assert server.sessions_opened == 5
        assert server.commands_run == ["echo hello"] * 5


class TestSinkFailures:

    def test_text_sink_fails_the_run(self, client):
        with client.new_session() as session:
            session.stdout = io.StringIO()
            with pytest.raises(SessionError) as excinfo:
                session.run("echo hello")
        assert isinstance(excinfo.value.__cause__, TypeError)

    def test_pty_modes_on_closed_channel(self, client):
        with client.new_session() as session:
            session.channel.close()
            with pytest.raises(SessionError):
                session.request_pty(PtyRequest(modes={termmodes.ECHO: 0}))
