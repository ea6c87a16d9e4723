"""Loading and validation of the parameters for running a remote Slurm job."""

from __future__ import annotations

import dataclasses
import json
import os
import pathlib
from collections.abc import Mapping
from typing import Any, Optional, Union

import yaml

from slurmlink.remote.auth import ConnectionTarget


@dataclasses.dataclass(frozen=True)
class JobConfig:
    """Parameters for running a Slurm job on a remote machine.

    Instances are normally created from a mapping of parameter file keys with
    `JobConfig.from_mapping`, which checks every field in one go.

    Attributes
    ----------
    host : str
        Hostname or IP address of the login node (key ``host``).
    port : int
        Port of the SSH server (key ``port``).
    username : str
        Username to log in as (key ``username``).
    password : str, optional
        Password to log in with (key ``password``). If absent, private keys in
        ``~/.ssh`` are tried instead.
    job_id_file : str
        Local path of the file recording the submitted job's ID (key ``jobIdFile``).
    workdir : str
        Remote directory to submit the job from (key ``workdir``).
    script_file : str
        Batch script to submit (key ``scriptFile``).
    interval : int
        Seconds between polls of the job (key ``interval``).
    """

    host: str
    port: int
    username: str
    job_id_file: str
    workdir: str
    script_file: str
    interval: int
    password: Optional[str] = dataclasses.field(default=None, repr=False)

    # (attribute, key, type, required)
    _keys = (
        ("host", "host", str, True),
        ("port", "port", int, True),
        ("username", "username", str, True),
        ("password", "password", str, False),
        ("job_id_file", "jobIdFile", str, True),
        ("workdir", "workdir", str, True),
        ("script_file", "scriptFile", str, True),
        ("interval", "interval", int, True),
    )

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> JobConfig:
        """Create a configuration from a mapping of parameter file keys to values.

        Keys that are not recognised are ignored. A ``password`` of ``None`` is treated
        as absent.

        Raises
        ------
        ConfigError
            If any required key is missing or any value has the wrong type or is out of
            range. The message lists every problem found.
        """

        values = {}
        problems = []
        for attr, key, type_, required in cls._keys:
            value = mapping.get(key)
            if value is None:
                if required:
                    problems.append(f"missing required key '{key}'")
                continue

            # bool is a subclass of int but never a valid port or interval
            if not isinstance(value, type_) or isinstance(value, bool):
                problems.append(
                    f"expected '{key}' to be of type {type_.__name__} but received "
                    f"{type(value).__name__} instead"
                )
                continue

            values[attr] = value

        if "port" in values and not 0 < values["port"] < 65536:
            problems.append(f"expected 'port' to be in 1-65535 but received {values['port']}")

        if "interval" in values and values["interval"] <= 0:
            problems.append(
                f"expected 'interval' to be positive but received {values['interval']}"
            )

        if problems:
            raise ConfigError("Invalid configuration: " + "; ".join(problems) + ".")

        return cls(**values)

    @property
    def target(self) -> ConnectionTarget:
        """The machine to connect to, as described by this configuration."""
        return ConnectionTarget(self.host, self.port, self.username, self.password)


def load_config(path: Union[str, os.PathLike]) -> JobConfig:
    """Read a configuration from a parameter file.

    Files with a ``.json`` extension are read as JSON; any other file is read as YAML.

    Parameters
    ----------
    path : str or os.PathLike
        Path to the parameter file.

    Returns
    -------
    JobConfig
        The configuration defined in the file.

    Raises
    ------
    ConfigError
        If the file cannot be read or parsed, does not define a mapping, or does not
        define a valid configuration.
    """

    path = pathlib.Path(path)
    try:
        with open(path, mode="r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                params = json.load(f)
            else:
                params = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Config file {path} could not be read: {e}") from e
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Parse config error in {path}: {e}") from e

    if not isinstance(params, Mapping):
        raise ConfigError(f"Expected config file {path} to define a mapping of keys to values.")

    return JobConfig.from_mapping(params)


class ConfigError(Exception):
    """Raised when the configuration for a job is missing or invalid."""

    pass
