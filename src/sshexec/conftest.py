import logging

import paramiko
import pytest

from sshexec.auth import Credentials
from sshexec.config import ClientConfig
from sshexec.hostkey import FixedHostKey
from sshexec.testing import CommandReply, LoopbackServer

# Configure logging for tests
logging.basicConfig(level=logging.INFO)

USER = "alice"
PASSWORD = "secret"


def scripted_commands():
    return {
        "echo hello": CommandReply(stdout=b"hello\n"),
        "both": CommandReply(stdout=b"out line\n", stderr=b"err line\n"),
        "fail": CommandReply(stderr=b"boom\n", exit_status=3),
        "noexit": CommandReply(stdout=b"partial", exit_status=None),
        "cat": lambda data: CommandReply(stdout=data),
    }


@pytest.fixture(scope="session")
def host_key():
    """Server host key, generated once per test run"""
    return paramiko.RSAKey.generate(2048)


@pytest.fixture(scope="session")
def user_key():
    """Client key authorized on the loopback server"""
    return paramiko.RSAKey.generate(2048)


@pytest.fixture
def server(host_key, user_key):
    """Fixture to start and stop a loopback SSH server for tests"""
    server = LoopbackServer(
        users={USER: PASSWORD},
        authorized_keys=[user_key],
        commands=scripted_commands(),
        host_key=host_key,
    )
    server.start()
    yield server
    server.stop()


@pytest.fixture
def config(server, host_key):
    """Client configuration pinned to the loopback server's key"""
    return ClientConfig(
        host=server.host,
        port=server.port,
        credentials=Credentials(username=USER, password=PASSWORD),
        host_key_callback=FixedHostKey(host_key),
    )
