"""
slurmlink
=========

The `slurmlink` package runs a Slurm batch job on a remote cluster as if it were a
local subprocess. It submits the job over SSH, tracks it through the scheduler until it
reaches a terminal state, mirrors the job's output log to local standard output as it
grows, and finally exits with a code that reflects how the remote job ended. This lets
a workflow engine that only knows how to run local commands drive jobs on an HPC
cluster.

Runs are restart-safe: the Slurm job ID is persisted to a local token file as soon as
the job has been submitted, so a process that is killed and started again resumes
polling the same job rather than submitting a new one.

Key Features
============
- **Resilient SSH channel**: lazily (re)connects to the login node, retrying command
  sessions and file transfers through transient network failures.
- **Credential resolution**: uses an explicit password when configured, otherwise
  probes the conventional private keys in ``~/.ssh`` until one is accepted.
- **Job lifecycle control**: submit with ``sbatch``, poll with ``scontrol``, mirror
  the ``slurm-<id>.out`` log incrementally and map the final state to an exit code.

Subpackages
-----------------------------------------------------------------------------------------
- [`remote`][slurmlink.remote]:
Connection channel and authentication over SSH.

- [`scheduler`][slurmlink.scheduler]:
Slurm job types, text-protocol parsers, the persisted job ID token and the lifecycle
controller.
"""
