import os
import pathlib
import sys
import time
from typing import BinaryIO, Optional, Union

from slurmlink.remote.channel import UNLIMITED_RETRIES, RemoteCommandError, SSHChannel
from slurmlink.remote.errors import ConnectionExhaustedError
from slurmlink.scheduler.jobs import JobId, JobInfo, JobStatus
from slurmlink.scheduler.parsing import (
    parse_job_info,
    parse_submission,
    parse_transferred_bytes,
)
from slurmlink.scheduler.token import JobIdFile


class SlurmJobController:
    """Drives a Slurm batch job from submission to completion over an SSH channel.

    A job is submitted with ``sbatch`` from the working directory, unless the job ID
    file already records a previously submitted job, in which case that job is resumed.
    The job is then polled every `interval` seconds: on each tick its status is queried
    with ``scontrol show job``, any new output in the job's log file
    ``<workdir>/slurm-<id>.out`` is copied to `stdout`, and polling stops once the job
    has reached a terminal status. The job ID file is then deleted.

    Failures to reach the remote machine while polling are not errors: the status is
    reported as `JobStatus.UNKNOWN` and no log is copied for that tick.

    Parameters
    ----------
    channel : SSHChannel
        The channel to run Slurm commands over.
    workdir : str
        The directory on the remote machine to submit the job from. Slurm writes the
        job's log file here.
    script_file : str
        The batch script to submit, relative to `workdir` or absolute.
    job_id_file : str or os.PathLike
        Local path to the file recording the ID of the submitted job.
    interval : float
        Seconds between polls of the job.
    stdout : BinaryIO, optional
        (Default: None) Binary stream to write the job's log to, byte for byte. Defaults
        to the buffer underlying ``sys.stdout``.
    """

    _submit_retry_interval = 5

    def __init__(
        self,
        channel: SSHChannel,
        workdir: str,
        script_file: str,
        job_id_file: Union[str, os.PathLike],
        interval: float,
        stdout: Optional[BinaryIO] = None,
    ):
        self._channel = channel
        self._workdir = pathlib.PurePosixPath(workdir)
        self._script_file = script_file
        self._job_id_file = JobIdFile(job_id_file)
        self._interval = interval
        self._stdout = stdout
        self._job_id: Optional[JobId] = None
        self._job_info = JobInfo()
        self._log_cursor = 0

    @property
    def job_id(self) -> Optional[JobId]:
        """(Read-only) The ID of the job being controlled, or ``None`` if it has not
        been acquired yet."""
        return self._job_id

    @property
    def job_info(self) -> JobInfo:
        """(Read-only) The job status and exit code from the most recent poll."""
        return self._job_info

    @property
    def log_cursor(self) -> int:
        """(Read-only) The number of bytes of the job's log copied so far."""
        return self._log_cursor

    @property
    def log_path(self) -> pathlib.PurePosixPath:
        """(Read-only) The path to the job's log file on the remote machine."""
        return self._workdir / f"slurm-{self._require_job_id()}.out"

    def _require_job_id(self) -> JobId:
        if self._job_id is None:
            raise ValueError("The job ID has not been acquired yet.")
        return self._job_id

    def run(self) -> int:
        """Submit or resume the job and poll it until it has finished.

        Returns
        -------
        int
            The exit code to finish the local process with: ``1`` if the job was
            cancelled, otherwise the exit code reported by the scheduler.

        Raises
        ------
        SubmissionError
            If the job could not be submitted.
        MalformedRemoteOutputError
            If the output of a Slurm command or of the log transfer could not be parsed.
        AuthenticationFailedError
            If the server rejects the channel's credential on reconnecting.
        """

        self.acquire_job_id()
        while True:
            time.sleep(self._interval)
            if self.poll().is_terminal:
                break

        self._job_id_file.delete()
        return self._job_info.process_exit_code

    def acquire_job_id(self) -> JobId:
        """Get the ID of the job, submitting it if the job ID file doesn't record one.

        A newly submitted job's ID is written to the job ID file before returning.
        """

        job_id = self._job_id_file.read()
        if job_id is not None:
            print(f"Resuming job {job_id} from {self._job_id_file.path}", file=sys.stderr)
        else:
            job_id = self.submit_job()
            self._job_id_file.write(job_id)
            print(f"Submitted job {job_id}", file=sys.stderr)

        self._job_id = job_id
        return job_id

    def submit_job(self) -> JobId:
        """Submit the batch script with ``sbatch``, retrying indefinitely until the
        remote machine can be reached.

        Raises
        ------
        SubmissionError
            If the connection broke while submitting or ``sbatch`` exited with an
            error.
        MalformedRemoteOutputError
            If the output of ``sbatch`` does not contain a job ID.
        """

        command = f"cd {self._workdir} && sbatch {self._script_file}"
        try:
            result = self._channel.run_command(
                command,
                max_retries=UNLIMITED_RETRIES,
                interval=self._submit_retry_interval,
                raw_stdout=True,
            )
        except RemoteCommandError as e:
            raise SubmissionError(f"Submit slurm job failed: {e}") from e

        self._output.write(result.stdout)
        self._output.flush()
        print(result.stderr, end="", file=sys.stderr)
        if result.failed:
            raise SubmissionError(
                f"Submit slurm job failed: '{command}' exited with status {result.exited}"
            )

        return parse_submission(result.stdout.decode("utf-8", errors="replace"))

    def get_job_info(self) -> JobInfo:
        """Query the scheduler for the status and exit code of the job.

        A single attempt is made. If the remote machine cannot be reached or
        ``scontrol`` exits with an error then the status is `JobStatus.UNKNOWN`.

        Raises
        ------
        MalformedRemoteOutputError
            If the output of ``scontrol`` does not contain a job state and exit code.
        """

        command = f"scontrol show job {self._require_job_id()}"
        try:
            result = self._channel.run_command(command, max_retries=0, interval=0)
        except (ConnectionExhaustedError, RemoteCommandError):
            return JobInfo(JobStatus.UNKNOWN)

        if result.failed:
            return JobInfo(JobStatus.UNKNOWN)

        return parse_job_info(result.stdout)

    def sync_log(self) -> int:
        """Copy new output from the job's log file to the local output stream.

        The bytes of the log from the current cursor onwards are read with ``dd`` and
        the cursor is advanced by the number of bytes ``dd`` reports copying. A single
        attempt is made: if the remote machine cannot be reached, or the log file
        doesn't exist yet, nothing is copied.

        Returns
        -------
        int
            The number of bytes copied.

        Raises
        ------
        MalformedRemoteOutputError
            If the byte count cannot be read from the diagnostic output of ``dd``.
        """

        command = f"dd if={self.log_path} bs=1 skip={self._log_cursor}"
        try:
            result = self._channel.run_command(
                command, max_retries=0, interval=0, raw_stdout=True
            )
        except (ConnectionExhaustedError, RemoteCommandError):
            return 0

        if result.failed:
            return 0

        transferred = parse_transferred_bytes(result.stderr)
        if result.stdout:
            self._output.write(result.stdout)
            self._output.flush()

        self._log_cursor += transferred
        return transferred

    def poll(self) -> JobInfo:
        """Make a single poll of the job: query its status, then copy any new log
        output.

        Returns
        -------
        JobInfo
            The status and exit code of the job.
        """

        self._job_info = self.get_job_info()
        self.sync_log()
        return self._job_info

    @property
    def _output(self) -> BinaryIO:
        # Looked up on use so that redirection of sys.stdout is honoured
        return self._stdout if self._stdout is not None else sys.stdout.buffer


class SubmissionError(Exception):
    """Raised when a job could not be submitted to the scheduler."""

    pass
