"""Parsers for the text printed by the Slurm commands and the ``dd`` log transfer.

These functions hold the whole of the (brittle) text contract with the remote side, so
that it can be tested without any connection logic. Each raises
`MalformedRemoteOutputError` if the text does not have the expected shape.
"""

from slurmlink.scheduler.jobs import JobId, JobInfo, JobStatus

SUBMISSION_FIELDS = 4
"""Number of whitespace-separated fields in ``sbatch`` output, e.g. 'Submitted batch
job 77'."""

SUBMISSION_JOB_ID_FIELD = 3
"""Position of the job ID within the ``sbatch`` output fields."""

JOB_STATE_MARKER = "JobState="
EXIT_CODE_MARKER = "ExitCode="

TRANSFER_SUMMARY_LINE = 2
"""Line of ``dd``'s standard error that reports the number of bytes copied."""


def parse_submission(text: str) -> JobId:
    """Get the job ID from the output of ``sbatch``.

    Parameters
    ----------
    text : str
        Standard output of ``sbatch``, of the form 'Submitted batch job <id>'.

    Returns
    -------
    JobId
        The ID of the submitted job.

    Raises
    ------
    MalformedRemoteOutputError
        If the output does not consist of exactly four fields or the last field is not
        a job ID.
    """

    fields = text.split()
    if len(fields) != SUBMISSION_FIELDS:
        raise MalformedRemoteOutputError(
            f"Expected {SUBMISSION_FIELDS} fields in sbatch output but received "
            f"{len(fields)}: '{text.strip()}'"
        )

    try:
        return JobId(fields[SUBMISSION_JOB_ID_FIELD])
    except ValueError:
        raise MalformedRemoteOutputError(
            f"Could not parse job ID from sbatch output '{text.strip()}'"
        ) from None


def parse_job_info(text: str) -> JobInfo:
    """Get the status and exit code of a job from the output of ``scontrol show job``.

    The status is the token following the first occurrence of 'JobState=' and the exit
    code is the text between the first occurrence of 'ExitCode=' and the following
    colon (``ExitCode`` is reported as '<code>:<signal>').

    Raises
    ------
    MalformedRemoteOutputError
        If either marker is missing, no state follows 'JobState=' or the exit code is
        not an integer.
    """

    state_start = _find_marker(text, JOB_STATE_MARKER)
    remainder = text[state_start:]
    if not remainder or remainder[0].isspace():
        raise MalformedRemoteOutputError(
            f"No job state following '{JOB_STATE_MARKER}' in scontrol output"
        )
    state = remainder.split(maxsplit=1)[0]

    code_start = _find_marker(text, EXIT_CODE_MARKER)
    code_end = text.find(":", code_start)
    if code_end == -1:
        raise MalformedRemoteOutputError(
            f"No ':' following '{EXIT_CODE_MARKER}' in scontrol output"
        )

    try:
        exit_code = int(text[code_start:code_end])
    except ValueError:
        raise MalformedRemoteOutputError(
            f"Could not parse exit code '{text[code_start:code_end]}' in scontrol output"
        ) from None

    return JobInfo(JobStatus.from_scheduler_state(state), exit_code, state)


def _find_marker(text: str, marker: str) -> int:
    """Index of the first character after `marker` in `text`."""

    i = text.find(marker)
    if i == -1:
        raise MalformedRemoteOutputError(f"No '{marker}' in scontrol output")

    return i + len(marker)


def parse_transferred_bytes(text: str) -> int:
    """Get the number of bytes copied from the diagnostic output of ``dd``.

    ``dd`` reports on standard error, for example::

        12+0 records in
        12+0 records out
        12 bytes copied, 4.1e-05 s, 293 kB/s

    Raises
    ------
    MalformedRemoteOutputError
        If there is no third line or it does not start with a byte count.
    """

    lines = text.split("\n")
    if len(lines) <= TRANSFER_SUMMARY_LINE or not lines[TRANSFER_SUMMARY_LINE].split():
        raise MalformedRemoteOutputError(f"Unexpected dd output: '{text.strip()}'")

    count = lines[TRANSFER_SUMMARY_LINE].split()[0]
    try:
        return int(count)
    except ValueError:
        raise MalformedRemoteOutputError(
            f"Could not parse byte count '{count}' from dd output"
        ) from None


class MalformedRemoteOutputError(Exception):
    """Raised when the output of a remote command does not have the expected form."""

    pass
