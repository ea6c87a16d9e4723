import argparse
import contextlib
import io
import pathlib
import sys
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from slurmlink.config import ConfigError, JobConfig, load_config
from slurmlink.remote.channel import SSHChannel
from slurmlink.remote.errors import AuthenticationFailedError
from slurmlink.scheduler.controller import SlurmJobController, SubmissionError
from slurmlink.scheduler.parsing import MalformedRemoteOutputError

FATAL_ERRORS = (
    ConfigError,
    AuthenticationFailedError,
    SubmissionError,
    MalformedRemoteOutputError,
)
"""Errors that end the process with a message rather than a traceback."""


def get_version() -> str:
    """Retrieve the version of slurmlink currently installed."""

    try:
        return version("slurmlink")
    except PackageNotFoundError:
        return "Package not found."


def run_job(config: JobConfig) -> int:
    """Run the job described by `config` to completion, returning the exit code to
    finish the process with."""

    with SSHChannel(config.target) as channel:
        controller = SlurmJobController(
            channel,
            workdir=config.workdir,
            script_file=config.script_file,
            job_id_file=config.job_id_file,
            interval=config.interval,
        )
        return controller.run()


def main(argv: Optional[list[str]] = None) -> int:
    """The entry point into the slurmlink command line application."""

    parser = argparse.ArgumentParser(
        prog="slurmlink",
        description="Submit a Slurm job over SSH, mirror its log and exit with its exit code.",
    )
    parser.add_argument(
        "params",
        type=pathlib.Path,
        help="path to a YAML or JSON file of job parameters",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="don't print connection and submission progress to standard error",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"slurmlink {get_version()}",
        help="show the current installed version of slurmlink and exit",
    )
    args = parser.parse_args(argv)

    try:
        config = load_config(args.params)
        quiet = contextlib.redirect_stderr(io.StringIO()) if args.quiet else contextlib.nullcontext()
        with quiet:
            return run_job(config)

    except FATAL_ERRORS as e:
        print(f"slurmlink: error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print()  # Use of print ensures next shell prompt starts on new line
        return 130


if __name__ == "__main__":
    sys.exit(main())
