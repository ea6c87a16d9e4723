"""
slurmlink.scheduler
===================

Control of a Slurm batch job over an SSH channel: submission, status polling, log
mirroring and mapping of the final job state to a process exit code.

Modules
=======

[`controller`][slurmlink.scheduler.controller]:
    `SlurmJobController`, which submits or resumes a job and polls it to completion.

[`jobs`][slurmlink.scheduler.jobs]:
    Job identifiers (`JobId`), statuses (`JobStatus`) and the per-poll job
    information (`JobInfo`).

[`parsing`][slurmlink.scheduler.parsing]:
    Parsers for the output of ``sbatch``, ``scontrol show job`` and ``dd``.

[`token`][slurmlink.scheduler.token]:
    `JobIdFile`, the local record of a submitted job's ID.
"""

from slurmlink.scheduler.controller import SlurmJobController, SubmissionError
from slurmlink.scheduler.jobs import TERMINAL_STATUSES, JobId, JobInfo, JobStatus
from slurmlink.scheduler.parsing import (
    MalformedRemoteOutputError,
    parse_job_info,
    parse_submission,
    parse_transferred_bytes,
)
from slurmlink.scheduler.token import JobIdFile
