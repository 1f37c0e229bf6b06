"""
Backups Manager Scheduler Service

This module implements the runtime service that triggers backup
jobs on their cron schedules using APScheduler.

Responsibilities:
- Initialize and configure APScheduler
- Register one cron-triggered callable per backup job
- Run each firing on a worker thread, isolated from the others
- Manage scheduler lifecycle and graceful shutdown
"""

## version related
__author__ = "Kyle"
__version__ = "0.0.1"
__email__ = "kyle@hacking-linux.com"

## import build in pkgs
import re
import signal
import logging
import threading
from datetime import datetime
from typing import List
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.triggers.cron import CronTrigger

## import private pkgs
from Job import Job
from BackupRun import BackupRun, RunOutcome

## job repr in APScheduler messages: "<name> (trigger: ..., next run at: ...)"
JOB_NAME_PATTERN = re.compile(r'job "(?P<name>.+?) \(trigger: ', re.IGNORECASE)

class APSchedulerForwardHandler(logging.Handler):
    """
    Forward APScheduler records into the application logger.

    The level is kept, and when the message names a job its name
    is attached as the backup_task field, so skipped or missed
    firings can be found next to the runs of that job.
    """

    def __init__(self, my_logger):
        super().__init__()

        ## application logger used for forwarding
        self.my_logger = my_logger

    @staticmethod
    def job_name(message: str) -> str:
        match = JOB_NAME_PATTERN.search(message)
        return match.group('name') if match else None

    def emit(self, record):
        try:
            msg = self.format(record)
            extra = {}
            name = self.job_name(record.getMessage())
            if name is not None:
                extra['backup_task'] = name

            self.my_logger.log(record.levelno, {'apscheduler': msg}, extra = extra)

        except Exception:
            self.handleError(record)

class BackupsManagerService(object):
    """
    Core scheduler service controller.

    Overlapping firings of the same job are skipped: every job
    is registered with max_instances = 1 and coalescing, so a
    slow run is never joined by a second run of the same job.
    Different jobs run concurrently on the thread pool.
    """

    def __init__(self, logger: object, storage: object, bucket: str, timezone: str = 'UTC', max_workers: int = 10, misfire_grace_time: int = 60, keep_workspace: bool = False) -> None:
        """
        Initialize the scheduler service.

        Args:
            logger (object): Application logger
            storage (object): Storage backend
            bucket (str): Destination bucket
            timezone (str): Scheduler timezone
            max_workers (int): Maximum worker threads
            misfire_grace_time (int): Misfire grace time in seconds
            keep_workspace (bool): Keep run workspaces for debugging

        Returns:
            None
        """

        self.logger = logger
        self.logger.info({'status': 'start'})

        self.storage = storage
        self.bucket = bucket
        self.timezone = timezone
        self.max_workers = max_workers
        self.misfire_grace_time = misfire_grace_time
        self.keep_workspace = keep_workspace

        ## internal runtime state
        self._scheduler = None
        self._running = False

        ## set on shutdown, cancels in-flight shell sessions
        self._shutdown = threading.Event()

        ## forward APScheduler logs into application logger
        self._setup_apscheduler_logging()

        self.init()
        self.logger.info({'status': 'end'})

    def init(self) -> None:
        """
        Initialize the APScheduler instance.

        Jobs come from the jobs file at every start, so the
        default in-memory job store is used.

        Returns:
            None
        """

        self._scheduler = BackgroundScheduler(
            executors = {
                ## thread pool used for job execution
                'default': ThreadPoolExecutor(max_workers = self.max_workers)
            },
            timezone = self.timezone,
        )

    def _setup_apscheduler_logging(self) -> None:
        """
        Redirect APScheduler internal logs into the application logger.

        Returns:
            None
        """

        aps_logger = logging.getLogger('apscheduler')
        aps_logger.setLevel(logging.INFO)

        ## attach once, services may be created more than once per process
        for handler in list(aps_logger.handlers):
            if isinstance(handler, APSchedulerForwardHandler):
                aps_logger.removeHandler(handler)

        handler = APSchedulerForwardHandler(self.logger)
        handler.setFormatter(logging.Formatter('%(levelname)s %(name)s %(message)s'))

        ## disable log propagation to avoid duplicate logs
        aps_logger.addHandler(handler)
        aps_logger.propagate = False

    def trigger(self, job: Job) -> CronTrigger:
        """
        Build the cron trigger of a job.

        Args:
            job (Job): Job definition

        Returns:
            CronTrigger: Trigger in the scheduler timezone
        """

        return CronTrigger.from_crontab(job.schedule, timezone = self.timezone)

    def add_job(self, job: Job) -> None:
        """
        Register a backup job with the scheduler.

        Args:
            job (Job): Job definition

        Returns:
            None
        """

        self.logger.info({'status': 'start', 'job': job.name, 'schedule': job.schedule})

        self._scheduler.add_job(
            func = self.run_job,
            trigger = self.trigger(job),
            args = [job],
            id = job.name,
            name = job.name,
            replace_existing = True,
            coalesce = True,
            max_instances = 1,
            misfire_grace_time = self.misfire_grace_time,
        )

        self.logger.info({'status': 'end', 'job': job.name})

    def list_jobs(self, now: datetime = None) -> List[dict]:
        """
        Describe the scheduled jobs.

        Args:
            now (datetime): Reference time for the next fire time

        Returns:
            list: One dict per job with its name, trigger and next fire time
        """

        jobs = []
        for scheduled in self._scheduler.get_jobs():
            ## pending jobs have no next_run_time until the scheduler starts
            next_fire_time = scheduled.trigger.get_next_fire_time(None, now or datetime.now(scheduled.trigger.timezone))
            jobs.append({
                'name': scheduled.name,
                'trigger': str(scheduled.trigger),
                'next_run_time': next_fire_time.isoformat() if next_fire_time else None,
            })

        return jobs

    def run_job(self, job: Job) -> RunOutcome:
        """
        Scheduled entry point of a job.

        Failures never leave this method, so they cannot affect
        future firings of the job.

        Args:
            job (Job): Job definition

        Returns:
            RunOutcome: Run result, None on unexpected failure
        """

        try:
            return BackupRun(
                self.logger,
                job,
                self.storage,
                self.bucket,
                cancel_event = self._shutdown,
                keep_workspace = self.keep_workspace,
            ).execute()

        except Exception as e:
            self.logger.exception({'status': 'unexpected failure', 'error': str(e)}, extra = {'backup_task': job.name})
            return None

    def start(self) -> None:
        """
        Start the scheduler service.

        Returns:
            None
        """

        self.logger.info({'status': 'start'})
        self._scheduler.start()
        self._running = True
        self.logger.info({'status': 'scheduler has started'})

    def stop(self) -> None:
        """
        Stop the scheduler service.

        In-flight runs are cancelled first, then the scheduler
        waits for their workers to return.

        Returns:
            None
        """

        self.logger.info({'status': 'scheduler is stopping'})
        self._shutdown.set()
        try:
            if self._scheduler and self._scheduler.running:
                self._scheduler.shutdown(wait = True)

        finally:
            ## ensure running flag is cleared
            self._running = False

        self.logger.info({'status': 'end'})

    def serve_forever(self, poll_interval: float = 1) -> None:
        """
        Run the scheduler service main loop.

        This method starts the scheduler, installs signal handlers
        and blocks until a termination signal stops the service.

        Args:
            poll_interval (float): Seconds between liveness checks

        Returns:
            None
        """

        self.start()

        ## register signal handlers for graceful shutdown
        signal.signal(signal.SIGTERM, self._handle_exit)
        signal.signal(signal.SIGINT, self._handle_exit)

        while self._running:
            self._shutdown.wait(poll_interval)

    def _handle_exit(self, signum, frame) -> None:
        """
        Handle process termination signals.

        Args:
            signum (int): Signal number
            frame (object): Current stack frame

        Returns:
            None
        """

        self.logger.info({'status': 'Received signal %s, exiting...' % (signum)})
        self.stop()
