"""Classification of the failures that can arise when connecting to a remote machine.

Retry decisions are made on the kind of failure rather than on the text of an error
message: a transient failure is worth another attempt with the same credential, a
rejected credential is not, and anything else is a programming or configuration error
that should propagate unchanged.
"""

from enum import Enum

from paramiko.ssh_exception import AuthenticationException, SSHException


class FailureKind(Enum):
    """The kinds of failure that can occur when dialling or opening a session."""

    TRANSIENT = "Transient"
    """The remote end could not be reached or the transport broke; trying again later
    may succeed. Has the value 'Transient'."""

    REJECTED = "Rejected"
    """The remote end explicitly refused the credential offered. Has the value
    'Rejected'."""

    FATAL = "Fatal"
    """Any other error, which should not be retried. Has the value 'Fatal'."""


def classify_failure(error: BaseException) -> FailureKind:
    """Classify an exception raised while connecting or opening a session.

    Parameters
    ----------
    error : BaseException
        The exception to classify.

    Returns
    -------
    FailureKind
        ``FailureKind.REJECTED`` for authentication failures (including unsupported
        authentication types), ``FailureKind.TRANSIENT`` for socket errors, unexpected
        end of stream and other SSH protocol errors, and ``FailureKind.FATAL``
        otherwise.
    """

    # AuthenticationException derives from SSHException so must be checked first
    if isinstance(error, AuthenticationException):
        return FailureKind.REJECTED
    elif isinstance(error, (OSError, EOFError, SSHException)):
        return FailureKind.TRANSIENT
    else:
        return FailureKind.FATAL


class ConnectionExhaustedError(Exception):
    """Raised when the allowed number of attempts at establishing a connection or
    session have all failed."""

    pass


class AuthenticationFailedError(Exception):
    """Raised when no credential is accepted by the remote machine, or a private key
    file cannot be loaded."""

    pass
