"""
Error Definition Module

This module defines the exception hierarchy used by the backup
service. Run-scoped errors abort the current run only; startup
errors abort the process before any job is scheduled.
"""

## version related
__author__ = "Kyle"
__version__ = "0.0.1"
__email__ = "kyle@hacking-linux.com"

class BackupError(Exception):
    """
    Base class of all run-scoped errors.

    Raised by a pipeline stage, caught by the run orchestrator,
    which logs it and moves the run to the failed state.
    """

class WorkspaceError(BackupError):
    """Temporary workspace could not be created."""

class TemplateError(BackupError):
    """Reserved. Placeholder expansion currently cannot fail."""

class ExecutionError(BackupError):
    """
    Shell session failed.

    Attributes:
        returncode (int):
            Exit status of the shell session, None when the
            shell could not be started.

        timed_out (bool):
            True when the session was terminated because its
            deadline expired.

        cancelled (bool):
            True when the session was terminated because the
            service is shutting down.
    """

    def __init__(self, message: str, returncode: int = None, timed_out: bool = False, cancelled: bool = False) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.timed_out = timed_out
        self.cancelled = cancelled

class ValidationError(BackupError):
    """Declared artifact path does not exist after execution."""

class DetectionError(BackupError):
    """Artifact could not be read for content type detection."""

class UploadError(BackupError):
    """Artifact could not be uploaded to object storage."""

class ConfigError(Exception):
    """Environment or jobs file is missing or invalid."""

class BucketError(Exception):
    """Destination bucket is missing or storage is unreachable."""
