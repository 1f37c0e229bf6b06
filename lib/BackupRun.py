"""
Backup Run Module

This module drives one execution of a backup job through its
pipeline:

    STARTING -> WORKSPACE_READY -> COMMANDS_EXPANDED -> EXECUTED
             -> VALIDATED -> NAMED -> TYPE_DETECTED -> UPLOADED

The first failing stage moves the run to FAILED and the remaining
stages are skipped. Nothing is retried and nothing already done
is rolled back, except the workspace, which is always removed
unless it was explicitly kept.
"""

## version related
__author__ = "Kyle"
__version__ = "0.0.1"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
import threading
from enum import Enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

## import private pkgs
import Template
from Job import Job
from Log import Log
from Errors import BackupError
from Workspace import Workspace
from CommandRunner import CommandRunner
from Identifier import generate_backup_id
from Artifact import artifact_name, detect_content_type, validate_artifact

class RunState(Enum):
    STARTING = 'starting'
    WORKSPACE_READY = 'workspace_ready'
    COMMANDS_EXPANDED = 'commands_expanded'
    EXECUTED = 'executed'
    VALIDATED = 'validated'
    NAMED = 'named'
    TYPE_DETECTED = 'type_detected'
    UPLOADED = 'uploaded'
    FAILED = 'failed'

## stage attempted from each non-terminal state
STAGES = {
    RunState.STARTING: 'workspace',
    RunState.WORKSPACE_READY: 'template',
    RunState.COMMANDS_EXPANDED: 'execute',
    RunState.EXECUTED: 'validate',
    RunState.VALIDATED: 'name',
    RunState.NAMED: 'detect',
    RunState.TYPE_DETECTED: 'upload',
}

@dataclass
class RunContext(object):
    """
    State owned by a single run, never shared or persisted.
    """

    backup_id: str
    started_at: datetime
    workspace_path: Optional[str] = None
    expanded_commands: Tuple[str, ...] = ()
    artifact_path: Optional[str] = None

@dataclass
class RunOutcome(object):
    """
    Final result of a run.
    """

    backup_id: str
    state: RunState
    failed_stage: Optional[str] = None
    error: Optional[BackupError] = None
    destination_name: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.UPLOADED

class BackupRun(object):
    """
    Run orchestrator.

    One instance handles one scheduled firing of a job.
    """

    def __init__(self, logger: object, job: Job, storage: object, bucket: str, cancel_event: threading.Event = None, keep_workspace: bool = False, workspace_root: str = None, id_factory: Callable[[], str] = generate_backup_id, clock: Callable[[], datetime] = None) -> None:
        """
        Initialize the run.

        Args:
            logger (object): Application logger
            job (Job): Job definition
            storage (object): Storage backend providing put_object()
            bucket (str): Destination bucket
            cancel_event (threading.Event): Service shutdown signal
            keep_workspace (bool): Keep the workspace after the run
            workspace_root (str): Parent of workspaces, system temp by default
            id_factory (callable): Run identifier generator
            clock (callable): Returns the run start time

        Returns:
            None
        """

        self.logger = logger
        self.job = job
        self.storage = storage
        self.bucket = bucket
        self.cancel_event = cancel_event
        self.keep_workspace = keep_workspace or job.keep_workspace
        self.workspace_root = workspace_root
        self.id_factory = id_factory
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.state = RunState.STARTING

    def _transition(self, logger: object, state: RunState, **fields) -> None:
        self.state = state
        record = {'state': state.value}
        record.update(fields)
        logger.info(record)

    def execute(self) -> RunOutcome:
        """
        Run the pipeline once.

        Returns:
            RunOutcome: Final state, failure cause or upload details
        """

        ## identifier failures are fatal to the run
        context = RunContext(backup_id = self.id_factory(), started_at = self.clock())
        logger = Log.bind(self.logger, context.backup_id, self.job.name)
        outcome = RunOutcome(backup_id = context.backup_id, state = self.state)

        logger.info({'status': 'backup task started'})
        try:
            self._pipeline(context, logger, outcome)

        except BackupError as e:
            outcome.failed_stage = STAGES[self.state]
            outcome.error = e
            logger.error({'state': RunState.FAILED.value, 'stage': outcome.failed_stage, 'error': str(e)})
            self.state = RunState.FAILED

        except Exception as e:
            ## not a pipeline error, record the stage on the run before it escapes
            logger.exception({'state': RunState.FAILED.value, 'stage': STAGES.get(self.state), 'error': str(e)})
            self.state = RunState.FAILED
            raise

        outcome.state = self.state
        logger.info({'status': 'backup task completed', 'result': self.state.value})
        return outcome

    def _pipeline(self, context: RunContext, logger: object, outcome: RunOutcome) -> None:
        job = self.job
        workspace = Workspace(logger, self.workspace_root)

        with workspace.acquire(job.name, context.backup_id, keep = self.keep_workspace) as path:
            context.workspace_path = path
            self._transition(logger, RunState.WORKSPACE_READY, workspace = path)

            context.expanded_commands = Template.expand_commands(job.commands, context.backup_id, path)
            context.artifact_path = Template.expand(job.artifact_path, context.backup_id, path)
            self._transition(logger, RunState.COMMANDS_EXPANDED, artifact = context.artifact_path)

            CommandRunner(logger).run(context.expanded_commands, timeout = job.timeout, cancel_event = self.cancel_event)
            self._transition(logger, RunState.EXECUTED)

            validate_artifact(context.artifact_path)
            self._transition(logger, RunState.VALIDATED)

            outcome.destination_name = artifact_name(job.name, context.backup_id, context.artifact_path, context.started_at)
            self._transition(logger, RunState.NAMED, destination = outcome.destination_name)

            outcome.content_type = detect_content_type(context.artifact_path)
            self._transition(logger, RunState.TYPE_DETECTED, content_type = outcome.content_type)

            self.storage.put_object(self.bucket, outcome.destination_name, context.artifact_path, outcome.content_type, logger = logger)
            self._transition(logger, RunState.UPLOADED)
