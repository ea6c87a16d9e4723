from __future__ import annotations

import dataclasses
import re
from enum import Enum
from typing import Union


class JobId:
    """A Slurm job identifier.

    A job ID can only consist of digits. A string representation of the ID can be
    obtained using the ``str`` function and an integer one using ``int``.

    Parameters
    ----------
    job_id : Union[str, int, JobId]
        A non-negative integer, or a string consisting only of digits (surrounding
        whitespace is ignored), or another instance of ``JobId``.
    """

    def __init__(self, job_id: Union[str, int, JobId]):
        self._job_id = self._parse(job_id)

    @staticmethod
    def _parse(job_id) -> int:
        job_id_str = str(job_id).strip()
        if re.fullmatch("[0-9]+", job_id_str):
            return int(job_id_str)
        else:
            raise ValueError(
                "Expected 'job_id' to define a string consisting only of digits, "
                f"but received '{str(job_id)}' instead."
            )

    def __str__(self) -> str:
        return str(self._job_id)

    def __int__(self) -> int:
        return self._job_id

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._job_id})"

    def __eq__(self, other) -> bool:
        return isinstance(other, self.__class__) and self._job_id == int(other)

    def __hash__(self):
        return hash(self._job_id)


class JobStatus(Enum):
    """The statuses a Slurm job can be observed in.

    Slurm reports many more job states than are enumerated here. Any state reported by
    the scheduler that is not one of these is treated as `RUNNING`, i.e. as not yet
    finished.
    """

    PENDING = "PENDING"
    """The job is waiting to be run. This is the status assumed before the scheduler
    has first been queried."""

    RUNNING = "RUNNING"
    """The job has been started and has not yet finished."""

    FAILED = "FAILED"
    """The job finished with a non-zero exit code or other failure condition."""

    COMPLETED = "COMPLETED"
    """The job finished successfully."""

    PURGED = "PURGED"
    """The job's record has been purged by the scheduler."""

    CANCELLED = "CANCELLED"
    """The job was cancelled by a user or administrator."""

    UNKNOWN = "UNKNOWN"
    """The scheduler could not be queried this time round. Not a state that Slurm
    itself reports."""

    @classmethod
    def from_scheduler_state(cls, state: str) -> JobStatus:
        """Get the status corresponding to a ``JobState`` value reported by Slurm."""

        try:
            status = cls(state)
        except ValueError:
            return cls.RUNNING

        return cls.RUNNING if status is cls.UNKNOWN else status


TERMINAL_STATUSES = {
    JobStatus.FAILED,
    JobStatus.COMPLETED,
    JobStatus.PURGED,
    JobStatus.CANCELLED,
}
"""Statuses after which a job is no longer polled."""


@dataclasses.dataclass(frozen=True)
class JobInfo:
    """The status and exit code of a job, as last reported by the scheduler.

    Attributes
    ----------
    status : JobStatus
        The status of the job.
    exit_code : int
        The exit code reported by the scheduler. Only meaningful once the job has
        reached a terminal status.
    state : str
        The raw ``JobState`` string reported by the scheduler (equal to the status's
        value unless the scheduler reported a state that is not enumerated in
        `JobStatus`).
    """

    status: JobStatus = JobStatus.PENDING
    exit_code: int = 0
    state: str = ""

    def __post_init__(self):
        if not self.state:
            object.__setattr__(self, "state", self.status.value)

    @property
    def is_terminal(self) -> bool:
        """Whether the job has finished and should no longer be polled."""
        return self.status in TERMINAL_STATUSES

    @property
    def process_exit_code(self) -> int:
        """The exit code the local process should finish with for this job. A cancelled
        job always gives ``1``, regardless of the exit code the scheduler reported."""

        if self.status is JobStatus.CANCELLED:
            return 1
        else:
            return self.exit_code
