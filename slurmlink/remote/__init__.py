"""
slurmlink.remote
================

Remote execution over SSH: a resilient channel for running commands and transferring
files on a login node, and the resolution of the credential it authenticates with.

Modules
=======

[`auth`][slurmlink.remote.auth]:
    The connection target, the resolved credential and the resolver that decides
    between password and private-key authentication.

[`channel`][slurmlink.remote.channel]:
    `SSHChannel`, which owns a single (re)connectable transport and runs commands,
    uploads and downloads with bounded or unbounded retry.

[`errors`][slurmlink.remote.errors]:
    Structured classification of connection failures and the errors raised when
    connecting is exhausted or authentication fails.
"""

from slurmlink.remote.auth import AuthenticationResolver, ConnectionTarget, Credential
from slurmlink.remote.channel import RemoteCommandError, SSHChannel
from slurmlink.remote.errors import (
    AuthenticationFailedError,
    ConnectionExhaustedError,
    FailureKind,
    classify_failure,
)
