"""
Job Definition Module

This module defines the Job data structure used by the backup
service. A Job represents one declared backup: the shell
commands to run, the cron-style schedule that triggers them,
and the artifact they are expected to produce.
"""

## version related
__author__ = "Kyle"
__version__ = "0.0.1"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
from dataclasses import dataclass
from typing import Optional, Tuple

@dataclass(frozen = True)
class Job(object):
    """
    Backup job definition.

    Instances are loaded once at startup and shared by every
    scheduled run of the job, so they are immutable. Each run
    expands the commands into its own copy.

    Attributes:
        name (str):
            Unique, non-empty job name. Used in logs, workspace
            names and uploaded object names.

        schedule (str):
            Cron expression (crontab syntax, five fields).

        commands (tuple):
            Ordered shell statements, run in one shell session.

        artifact_path (str):
            Path the commands are expected to produce. May refer
            to the workspace through the ${TEMP_DIR} placeholder.

        timeout (int):
            Deadline in seconds for the shell session, None
            for no deadline.

        keep_workspace (bool):
            Keep the temporary workspace after the run.
    """

    name: str
    schedule: str
    commands: Tuple[str, ...]
    artifact_path: str
    timeout: Optional[int] = None
    keep_workspace: bool = False
