"""Command-line interface.

    sshexec [options] HOST [COMMAND...]

Runs COMMAND on HOST, or an interactive shell when no command is given.
Any failure prints ``error: ...`` and exits non-zero; a remote non-zero
exit status becomes the exit status of sshexec.
"""

import getpass
import logging
import os
import sys
from typing import Optional, Tuple

import click

from sshexec import __version__
from sshexec.auth import Credentials
from sshexec.client import dial
from sshexec.config import DEFAULT_CONNECT_TIMEOUT, ClientConfig, PtyRequest
from sshexec.errors import ExitError, SSHExecError
from sshexec.hostkey import (
    FixedHostKey,
    KnownHostsCallback,
    RecordingHostKey,
    authorized_key_line,
    insecure_ignore_host_key,
    parse_public_key,
)
from sshexec.termmodes import MAX_VALUE, MODE_NAMES

logger = logging.getLogger(__name__)

DEFAULT_KNOWN_HOSTS = "~/.ssh/known_hosts"


def setup_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if verbose < 2:
        logging.getLogger("paramiko").setLevel(logging.WARNING)


def load_pinned_key(value: str):
    """Pinned key from an OpenSSH public key line, or a file holding one."""
    path = os.path.expanduser(value)
    if os.path.isfile(path):
        with open(path, "r") as f:
            value = f.readline()
    return parse_public_key(value)


def parse_modes(values: Tuple[str, ...]) -> dict:
    modes = {}
    for item in values:
        name, sep, number = item.partition("=")
        if not sep or name.upper() not in MODE_NAMES:
            raise click.BadParameter(f"expected NAME=VALUE with a known mode, got {item!r}",
                                     param_hint="--mode")
        try:
            value = int(number)
        except ValueError:
            raise click.BadParameter(f"mode value must be an integer: {item!r}",
                                     param_hint="--mode") from None
        if not 0 <= value <= MAX_VALUE:
            raise click.BadParameter(f"mode value out of range: {item!r}", param_hint="--mode")
        modes[name.upper()] = value
    return modes


@click.command(context_settings={"ignore_unknown_options": True,
                                 "allow_interspersed_args": False})
@click.version_option(version=__version__)
@click.argument("host")
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
@click.option("-p", "--port", default=22, show_default=True, help="Server port")
@click.option("-l", "--user", envvar="SSHEXEC_USER", default=getpass.getuser,
              help="Remote username")
@click.option("--password", envvar="SSHEXEC_PASSWORD", help="Password (or SSHEXEC_PASSWORD)")
@click.option("--ask-password", is_flag=True, help="Prompt for the password")
@click.option("-i", "--identity", type=click.Path(dir_okay=False), help="Private key file")
@click.option("--passphrase", help="Passphrase for the private key")
@click.option("--insecure-ignore-host-key", "insecure", is_flag=True,
              help="Accept any host key (insecure, test targets only)")
@click.option("--host-key", help="Pinned public key line, or a file containing one")
@click.option("--known-hosts", default=DEFAULT_KNOWN_HOSTS, show_default=True,
              help="known_hosts file used when no other host-key option is given")
@click.option("--print-host-key", is_flag=True,
              help="Accept any host key and print it in OpenSSH format")
@click.option("-t", "--tty", is_flag=True, help="Request a pseudo-terminal")
@click.option("--term", default=lambda: os.environ.get("TERM", "xterm"), help="Terminal type")
@click.option("--mode", "modes", multiple=True, help="Terminal mode NAME=VALUE (repeatable)")
@click.option("--capture", type=click.Choice(["none", "stdout", "combined"]), default="none",
              show_default=True, help="How to collect command output")
@click.option("--timeout", default=DEFAULT_CONNECT_TIMEOUT, type=float, show_default=True,
              help="Connect timeout in seconds")
@click.option("-v", "--verbose", count=True, help="More logging (-vv for paramiko)")
def main(host, command, port, user, password, ask_password, identity, passphrase,
         insecure, host_key, known_hosts, print_host_key, tty, term,
         modes, capture, timeout, verbose):
    """Run COMMAND on HOST over SSH."""
    setup_logging(verbose)

    policies = sum(bool(x) for x in (insecure, host_key, print_host_key))
    if policies > 1:
        raise click.UsageError(
            "choose one of --insecure-ignore-host-key, --host-key, --print-host-key"
        )
    if ask_password:
        password = click.prompt("Password", hide_input=True)
    pty_modes = parse_modes(modes)

    recorder = None
    try:
        if insecure:
            logger.warning("Host key verification disabled")
            callback = insecure_ignore_host_key()
        elif host_key:
            callback = FixedHostKey(load_pinned_key(host_key))
        elif print_host_key:
            recorder = callback = RecordingHostKey()
        else:
            callback = KnownHostsCallback(known_hosts)
        config = ClientConfig(
            host=host,
            port=port,
            credentials=Credentials(
                username=user,
                password=password,
                key_filename=identity,
                passphrase=passphrase,
            ),
            host_key_callback=callback,
            connect_timeout=timeout,
        )
        exit_code = run(config, " ".join(command), tty, PtyRequest(term=term, modes=pty_modes),
                        capture, recorder)
    except SSHExecError as e:
        click.echo(f"error: {e}", err=True)
        sys.exit(1)
    sys.exit(exit_code)


def run(config: ClientConfig, command: str, tty: bool, pty: PtyRequest, capture: str,
        recorder: Optional[RecordingHostKey] = None) -> int:
    """Connect, run ``command`` (or a shell) and return the exit code."""
    out = sys.stdout.buffer
    err = sys.stderr.buffer
    with dial(config) as client:
        if recorder is not None and recorder.seen:
            hostname = recorder.seen[-1][0]
            click.echo(f"{hostname} {authorized_key_line(recorder.last_key)}")
        with client.new_session() as session:
            if tty or not command:
                session.request_pty(pty)
            try:
                if capture == "stdout" and command:
                    out.write(session.output(command))
                elif capture == "combined" and command:
                    out.write(session.combined_output(command))
                else:
                    session.stdin = sys.stdin.buffer
                    session.stdout = out
                    session.stderr = err
                    if command:
                        session.start(command)
                    else:
                        session.shell()
                    session.wait()
            except ExitError as e:
                if e.output:
                    out.write(e.output)
                out.flush()
                click.echo(f"error: {e}", err=True)
                return e.exit_status
            out.flush()
    return 0


if __name__ == "__main__":
    main()
