"""A resilient channel for running commands and transferring files over SSH."""

import os
import shutil
import sys
import time
from typing import Callable, Optional, TypeVar, Union

from fabric import Connection
from fabric.runners import Result
from paramiko import Channel, SFTPClient
from paramiko.ssh_exception import SSHException

from slurmlink.remote.auth import (
    AuthenticationResolver,
    ConnectionTarget,
    Credential,
    make_connection,
)
from slurmlink.remote.errors import (
    AuthenticationFailedError,
    ConnectionExhaustedError,
    FailureKind,
    classify_failure,
)

T = TypeVar("T")

UNLIMITED_RETRIES = -1
"""Value of ``max_retries`` that makes an operation retry indefinitely."""

CHUNK_SIZE = 1024
"""Number of bytes written per chunk when uploading a file."""

RECV_SIZE = 32768
"""Maximum number of bytes read from a command's output stream at a time."""

_DRAIN_POLL_DELAY = 0.01


class SSHChannel:
    """A single logical SSH session to a remote machine.

    The channel holds at most one live transport. It is dialled when the channel is
    created and re-dialled lazily whenever an operation needs it and it is absent. If
    dialling succeeds but a command session or SFTP subsystem then cannot be opened on
    the transport, the transport is discarded so that the next attempt starts from a
    fresh connection.

    Each operation takes a retry policy: ``max_retries`` is the number of further
    attempts made after the first failed attempt at establishing a session (so ``0``
    means a single attempt) and ``-1`` means retry indefinitely; ``interval`` is the
    number of seconds to wait between attempts. Only failures to connect or to open a
    session are retried. A command that runs but exits with non-zero status is not a
    failure of the channel.

    The channel is not thread-safe and is intended for use from a single thread.

    Parameters
    ----------
    target : ConnectionTarget
        The machine to connect to.
    credential : Credential, optional
        (Default: None) The credential to authenticate with. If ``None`` then it will be
        resolved with an `AuthenticationResolver` for the target.
    ssh_dir : str or os.PathLike, optional
        (Default: None) The directory to look for private keys in when resolving a
        credential. Defaults to ``.ssh`` within the current user's home directory.

    Raises
    ------
    AuthenticationFailedError
        If no credential was supplied and none could be resolved, or if the server
        rejects the credential when the channel is dialled.
    """

    def __init__(
        self,
        target: ConnectionTarget,
        credential: Optional[Credential] = None,
        ssh_dir: Optional[Union[str, os.PathLike]] = None,
    ):
        self._target = target
        self._credential = (
            credential
            if credential is not None
            else AuthenticationResolver(target, ssh_dir=ssh_dir).resolve()
        )
        self._conn: Optional[Connection] = None
        if self._dial() is not None:
            print(f"Connection to {self._target.host} established.", file=sys.stderr)

    @property
    def target(self) -> ConnectionTarget:
        """(Read-only) The machine this channel connects to."""
        return self._target

    @property
    def credential(self) -> Credential:
        """(Read-only) The credential used for every (re)connection."""
        return self._credential

    @property
    def is_connected(self) -> bool:
        """Whether the channel currently holds a transport. The transport may still turn
        out to be broken when next used."""
        return self._conn is not None

    def _dial(self) -> Optional[Connection]:
        """Open a new transport, returning ``None`` if this fails in a way that is worth
        retrying.

        A credential rejected by the server is not retried.
        """

        conn = make_connection(self._target, self._credential)
        try:
            conn.open()
        except Exception as e:
            conn.close()
            self._conn = None
            kind = classify_failure(e)
            if kind is FailureKind.FATAL:
                raise

            if kind is FailureKind.REJECTED:
                raise AuthenticationFailedError(
                    f"Server rejected the credential for {self._target}: {e}"
                ) from e

            print(f"Failed to dial {self._target}: {e}", file=sys.stderr)
            return None

        self._conn = conn
        return conn

    def _discard(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _try_open(self, opener: Callable[[Connection], T]) -> Optional[T]:
        """Make a single attempt at opening something on the transport, dialling first
        if necessary."""

        conn = self._conn if self._conn is not None else self._dial()
        if conn is None:
            return None

        try:
            return opener(conn)
        except Exception as e:
            if classify_failure(e) is FailureKind.FATAL:
                raise

            self._discard()
            return None

    def _open_with_retry(
        self, opener: Callable[[Connection], T], max_retries: int, interval: float
    ) -> T:
        failures = 0
        while True:
            opened = self._try_open(opener)
            if opened is not None:
                return opened

            failures += 1
            if max_retries != UNLIMITED_RETRIES and failures > max_retries:
                raise ConnectionExhaustedError(
                    f"Maximum retries has been reached for SSH connection to "
                    f"{self._target} ({failures} failed attempts)."
                )

            time.sleep(interval)

    def open_session(self, max_retries: int = 0, interval: float = 0) -> Channel:
        """Open a new command session on the transport.

        Raises
        ------
        ConnectionExhaustedError
            If a session could not be opened within the allowed number of attempts.
        """

        return self._open_with_retry(
            lambda conn: conn.create_session(), max_retries, interval
        )

    def open_sftp(self, max_retries: int = 0, interval: float = 0) -> SFTPClient:
        """Open a new SFTP client on the transport. The caller is responsible for
        closing it.

        Raises
        ------
        ConnectionExhaustedError
            If the SFTP subsystem could not be opened within the allowed number of
            attempts.
        """

        return self._open_with_retry(_open_sftp_client, max_retries, interval)

    def run_command(
        self,
        command: str,
        max_retries: int = 0,
        interval: float = 0,
        raw_stdout: bool = False,
    ) -> Result:
        """Run a shell command on the remote machine in a fresh session.

        Parameters
        ----------
        command : str
            The command to run.
        max_retries : int, optional
            (Default: 0) Number of further attempts at opening a session after the first
            failed attempt, or ``-1`` to retry indefinitely.
        interval : float, optional
            (Default: 0) Seconds to wait between attempts.
        raw_stdout : bool, optional
            (Default: False) Whether to return the command's standard output as the
            bytes received, rather than decoding it as UTF-8.

        Returns
        -------
        fabric.runners.Result
            The captured standard output and standard error of the command, together
            with its exit status. A non-zero exit status is not treated as an error.

        Raises
        ------
        AuthenticationFailedError
            If the server rejects the credential when the channel is re-dialled.
        ConnectionExhaustedError
            If a session could not be opened within the allowed number of attempts.
        RemoteCommandError
            If the connection broke after the command had been started. The command is
            not re-run in this case.
        """

        session = self.open_session(max_retries, interval)
        try:
            session.exec_command(command)
            stdout, stderr = _drain_output(session)
            exited = session.recv_exit_status()
        except Exception as e:
            if classify_failure(e) is FailureKind.FATAL:
                raise

            self._discard()
            raise RemoteCommandError(
                f"Connection to {self._target} lost while running '{command}': {e}"
            ) from e
        finally:
            session.close()

        return Result(
            connection=self._conn,
            command=command,
            stdout=stdout if raw_stdout else stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exited=exited,
            hide=("stdout", "stderr"),
        )

    def upload(
        self,
        local_path: Union[str, os.PathLike],
        remote_path: str,
        max_retries: int = 0,
        interval: float = 0,
    ) -> None:
        """Copy a local file to the remote machine.

        The file is streamed in chunks of `CHUNK_SIZE` bytes over a new SFTP client,
        opened with the given retry policy. Both files and the SFTP client are closed
        before returning, whether or not the transfer succeeded.

        Raises
        ------
        ConnectionExhaustedError
            If the SFTP subsystem could not be opened within the allowed number of
            attempts.
        OSError
            If either file could not be opened, read or written.
        """

        with self.open_sftp(max_retries, interval) as sftp:
            with open(local_path, mode="rb") as src, sftp.open(remote_path, "wb") as dst:
                while chunk := src.read(CHUNK_SIZE):
                    dst.write(chunk)

        return None

    def download(
        self,
        remote_path: str,
        local_path: Union[str, os.PathLike],
        max_retries: int = 0,
        interval: float = 0,
    ) -> None:
        """Copy a file from the remote machine to the local machine.

        Raises
        ------
        ConnectionExhaustedError
            If the SFTP subsystem could not be opened within the allowed number of
            attempts.
        OSError
            If either file could not be opened, read or written (in particular
            ``FileNotFoundError`` if the remote file does not exist).
        """

        with self.open_sftp(max_retries, interval) as sftp:
            with sftp.open(remote_path, "rb") as src, open(local_path, mode="wb") as dst:
                shutil.copyfileobj(src, dst)

        return None

    def close(self) -> None:
        """Close the transport, if there is one. It will be re-dialled on next use."""
        self._discard()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


def _drain_output(session: Channel) -> tuple[bytes, bytes]:
    """Read standard output and standard error from a command session until the
    command has exited and both streams are empty.

    The two streams are read as data arrives on either, so that a command writing
    heavily to one of them cannot stall waiting for the other to be read.
    """

    stdout, stderr = bytearray(), bytearray()
    while True:
        idle = True
        if session.recv_ready():
            stdout += session.recv(RECV_SIZE)
            idle = False

        if session.recv_stderr_ready():
            stderr += session.recv_stderr(RECV_SIZE)
            idle = False

        if idle:
            if (
                session.exit_status_ready()
                and not session.recv_ready()
                and not session.recv_stderr_ready()
            ):
                return bytes(stdout), bytes(stderr)

            time.sleep(_DRAIN_POLL_DELAY)


def _open_sftp_client(conn: Connection) -> SFTPClient:
    sftp = SFTPClient.from_transport(conn.transport)
    if sftp is None:
        raise SSHException(f"Could not open SFTP subsystem on {conn.host}")

    return sftp


class RemoteCommandError(Exception):
    """Raised when the connection to a remote machine breaks while a command is
    running."""

    pass
