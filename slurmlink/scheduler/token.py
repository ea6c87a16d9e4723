import os
import pathlib
import tempfile
from typing import Optional, Union

from slurmlink.scheduler.jobs import JobId


class JobIdFile:
    """A local file recording the ID of a submitted job.

    The presence of a valid ID in the file is what marks a job as already submitted: a
    process that finds one resumes the recorded job instead of submitting a new one.
    The file holds the decimal job ID and nothing else.

    Parameters
    ----------
    path : str or os.PathLike
        Path to the file.
    """

    def __init__(self, path: Union[str, os.PathLike]):
        self._path = pathlib.Path(path)

    @property
    def path(self) -> pathlib.Path:
        """(Read-only) The path to the file."""
        return self._path

    def read(self) -> Optional[JobId]:
        """Read the job ID from the file.

        Returns
        -------
        Optional[JobId]
            The recorded job ID, or ``None`` if the file does not exist or does not
            contain a job ID.
        """

        try:
            contents = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            return JobId(contents)
        except ValueError:
            return None

    def write(self, job_id: JobId) -> None:
        """Record a job ID, replacing any previous contents of the file.

        The ID is written to a temporary file alongside the target which is then moved
        into place, so the file never holds a partially written ID.
        """

        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self._path.name}.", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, mode="w", encoding="utf-8") as f:
                f.write(str(job_id))
            os.replace(tmp_path, self._path)
        except BaseException:
            pathlib.Path(tmp_path).unlink(missing_ok=True)
            raise

        return None

    def delete(self) -> None:
        """Delete the file, if it exists."""

        self._path.unlink(missing_ok=True)
        return None
