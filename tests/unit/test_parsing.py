import unittest

from slurmlink.scheduler.jobs import JobId, JobInfo, JobStatus
from slurmlink.scheduler.parsing import (
    MalformedRemoteOutputError,
    parse_job_info,
    parse_submission,
    parse_transferred_bytes,
)
from tests.unit.fakes import make_scontrol_output
from tests.utilities.utilities import exact


class TestParseSubmission(unittest.TestCase):
    def test_job_id_from_sbatch_output(self):
        """The job ID is the fourth field of the output of sbatch, ignoring surrounding
        whitespace."""

        self.assertEqual(JobId(77), parse_submission("Submitted batch job 77\n"))
        self.assertEqual(JobId(12345), parse_submission("  Submitted batch job 12345  "))

    def test_wrong_number_of_fields_error(self):
        """A MalformedRemoteOutputError is raised if the output does not have exactly four
        fields."""

        for text in [
            "",
            "Submitted batch job",
            "Submitted batch job 77 on cluster",
            "sbatch: error: Batch job submission failed",
        ]:
            with self.subTest(text=text):
                with self.assertRaises(MalformedRemoteOutputError):
                    parse_submission(text)

    def test_non_numeric_job_id_error(self):
        """A MalformedRemoteOutputError is raised if the fourth field is not a job ID."""

        with self.assertRaisesRegex(
            MalformedRemoteOutputError,
            exact("Could not parse job ID from sbatch output 'Submitted batch job abc'"),
        ):
            parse_submission("Submitted batch job abc")


class TestParseJobInfo(unittest.TestCase):
    def test_state_and_exit_code(self):
        """The job status and exit code are read from the JobState and ExitCode
        entries of the scontrol output."""

        for state, code, status in [
            ("COMPLETED", 0, JobStatus.COMPLETED),
            ("FAILED", 2, JobStatus.FAILED),
            ("CANCELLED", 0, JobStatus.CANCELLED),
            ("PURGED", 0, JobStatus.PURGED),
            ("PENDING", 0, JobStatus.PENDING),
            ("RUNNING", 0, JobStatus.RUNNING),
        ]:
            with self.subTest(state=state):
                info = parse_job_info(make_scontrol_output(77, state, code))
                self.assertEqual(JobInfo(status, code, state), info)

    def test_compact_output(self):
        """The markers can appear anywhere in the text."""

        info = parse_job_info("...JobState=COMPLETED...ExitCode=0:0...")
        self.assertEqual(JobStatus.COMPLETED, info.status)
        self.assertEqual(0, info.exit_code)

    def test_unenumerated_state_is_running(self):
        """A state that is not one of the enumerated statuses is treated as running, with
        the raw state kept."""

        info = parse_job_info(make_scontrol_output(77, "CONFIGURING", 0))
        self.assertEqual(JobStatus.RUNNING, info.status)
        self.assertEqual("CONFIGURING", info.state)
        self.assertFalse(info.is_terminal)

    def test_first_exit_code_used(self):
        """The exit code comes from the first occurrence of 'ExitCode=', not from
        'DerivedExitCode='."""

        text = "JobState=FAILED ExitCode=3:0 DerivedExitCode=9:0"
        self.assertEqual(3, parse_job_info(text).exit_code)

    def test_malformed_output_error(self):
        """A MalformedRemoteOutputError is raised if a marker is missing or its value
        cannot be parsed."""

        for text in [
            "",
            "slurm_load_jobs error: Invalid job id specified",
            "JobState=COMPLETED Reason=None",
            "Reason=None ExitCode=0:0",
            "JobState= ExitCode=0:0",
            "ExitCode=0:0 JobState=",
            "JobState=COMPLETED ExitCode=0",
            "JobState=COMPLETED ExitCode=x:0",
        ]:
            with self.subTest(text=text):
                with self.assertRaises(MalformedRemoteOutputError):
                    parse_job_info(text)


class TestParseTransferredBytes(unittest.TestCase):
    def test_bytes_from_third_line(self):
        """The byte count is the first field of the third line of dd's diagnostics."""

        text = (
            "1234+0 records in\n"
            "1234+0 records out\n"
            "1234 bytes (1.2 kB, 1.2 KiB) copied, 0.0051 s, 242 kB/s\n"
        )
        self.assertEqual(1234, parse_transferred_bytes(text))

    def test_zero_bytes(self):
        text = "0+0 records in\n0+0 records out\n0 bytes copied, 1.2e-05 s, 0.0 kB/s\n"
        self.assertEqual(0, parse_transferred_bytes(text))

    def test_malformed_output_error(self):
        """A MalformedRemoteOutputError is raised if there is no byte count on the
        third line."""

        for text in [
            "",
            "1+0 records in\n1+0 records out",
            "1+0 records in\n1+0 records out\n\n",
            "1+0 records in\n1+0 records out\nbytes copied\n",
        ]:
            with self.subTest(text=text):
                with self.assertRaises(MalformedRemoteOutputError):
                    parse_transferred_bytes(text)


if __name__ == "__main__":
    unittest.main()
