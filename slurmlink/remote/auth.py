"""Resolution of the credential used to authenticate with a remote machine over SSH."""

import dataclasses
import os
import pathlib
import sys
import time
from typing import Any, Optional, Union

from fabric import Connection
from paramiko import PKey
from paramiko.ssh_exception import SSHException

from slurmlink.remote.errors import (
    AuthenticationFailedError,
    FailureKind,
    classify_failure,
)

DEFAULT_KEY_NAMES = ("id_rsa", "id_dsa", "id_ecdsa", "id_ed25519")
"""Names of the private key files probed for, in order of priority."""


@dataclasses.dataclass(frozen=True)
class ConnectionTarget:
    """The machine to connect to and who to connect as.

    Parameters
    ----------
    host : str
        The hostname or IP address of the SSH server.
    port : int
        The port the SSH server listens on.
    username : str
        The username to authenticate with the SSH server.
    password : str, optional
        (Default: None) A password to authenticate with. If ``None`` then private keys
        will be probed for instead.
    """

    host: str
    port: int
    username: str
    password: Optional[str] = dataclasses.field(default=None, repr=False)

    def __str__(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"


@dataclasses.dataclass(frozen=True)
class Credential:
    """A resolved method of authentication: either a password or a private key file.

    Instances are created by `AuthenticationResolver` and then reused unchanged for
    every (re)connection made with them.
    """

    password: Optional[str] = dataclasses.field(default=None, repr=False)
    key_filename: Optional[str] = None

    def __post_init__(self):
        if (self.password is None) == (self.key_filename is None):
            raise ValueError(
                "Exactly one of 'password' and 'key_filename' should be provided."
            )

    def connect_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``paramiko.SSHClient.connect`` that authenticate with
        this credential and nothing else."""

        if self.password is not None:
            auth = {"password": self.password}
        else:
            auth = {"key_filename": self.key_filename}

        return auth | {"look_for_keys": False, "allow_agent": False}


def candidate_key_paths(
    ssh_dir: Optional[Union[str, os.PathLike]] = None,
) -> list[pathlib.Path]:
    """Paths to the conventional private key files, in the order they should be tried.

    Parameters
    ----------
    ssh_dir : str or os.PathLike, optional
        (Default: None) The directory containing the key files. Defaults to ``.ssh``
        within the current user's home directory.
    """

    ssh_dir = pathlib.Path(ssh_dir) if ssh_dir is not None else pathlib.Path.home() / ".ssh"
    return [ssh_dir / name for name in DEFAULT_KEY_NAMES]


def make_connection(target: ConnectionTarget, credential: Credential) -> Connection:
    """Make a (not yet opened) connection to `target` that authenticates with
    `credential`."""

    return Connection(
        target.host,
        user=target.username,
        port=target.port,
        connect_kwargs=credential.connect_kwargs(),
    )


class AuthenticationResolver:
    """Decides how to authenticate with a remote machine.

    If the target carries a password then password authentication is used without any
    probing. Otherwise the private keys ``id_rsa``, ``id_dsa``, ``id_ecdsa`` and
    ``id_ed25519`` are tried in that order, skipping any that do not exist. Each key is
    loaded and then used to dial the target: if the server rejects it the next key is
    tried, while any other connection failure (e.g. the network being unreachable) is
    retried against the same key, indefinitely, pausing `backoff` seconds between
    attempts.

    Parameters
    ----------
    target : ConnectionTarget
        The machine to authenticate with.
    ssh_dir : str or os.PathLike, optional
        (Default: None) The directory to look for private keys in. Defaults to ``.ssh``
        within the current user's home directory.
    backoff : float, optional
        (Default: 1) Seconds to wait before re-dialling after a connection failure that
        was not an authentication rejection.
    """

    def __init__(
        self,
        target: ConnectionTarget,
        ssh_dir: Optional[Union[str, os.PathLike]] = None,
        backoff: float = 1,
    ):
        self._target = target
        self._ssh_dir = ssh_dir
        self._backoff = backoff

    def resolve(self) -> Credential:
        """Determine the credential to authenticate with.

        Returns
        -------
        Credential
            A password credential if the target has a password, otherwise a credential
            for the first private key that the server accepts.

        Raises
        ------
        AuthenticationFailedError
            If an existing key file cannot be read or parsed, or if no key is accepted
            by the server.
        """

        if self._target.password is not None:
            return Credential(password=self._target.password)

        for key_path in candidate_key_paths(self._ssh_dir):
            if not key_path.exists():
                continue

            self._load_key(key_path)
            credential = Credential(key_filename=str(key_path))
            if self._is_accepted(credential):
                return credential

            print(f"Key {key_path} rejected by {self._target.host}.", file=sys.stderr)

        raise AuthenticationFailedError(
            f"Failed to authenticate {self._target}: no private key was accepted."
        )

    @staticmethod
    def _load_key(key_path: pathlib.Path) -> PKey:
        # An unreadable or malformed key aborts resolution instead of moving on
        try:
            return PKey.from_path(key_path)
        except (OSError, ValueError, SSHException) as e:
            raise AuthenticationFailedError(
                f"Could not load private key {key_path}: {e}"
            ) from e

    def _is_accepted(self, credential: Credential) -> bool:
        """Whether the server accepts `credential`, dialling until it either accepts or
        rejects it."""

        while True:
            conn = make_connection(self._target, credential)
            try:
                conn.open()
                return True
            except Exception as e:
                kind = classify_failure(e)
                if kind is FailureKind.REJECTED:
                    return False
                elif kind is FailureKind.FATAL:
                    raise

                print(f"Failed to dial {self._target}: {e}", file=sys.stderr)
            finally:
                conn.close()

            time.sleep(self._backoff)
