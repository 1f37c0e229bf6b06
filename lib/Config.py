"""
Configuration Module

This module loads the runtime configuration of the backup
service from two sources:

- environment variables: storage credentials, scheduler,
  logging and workspace settings
- a YAML jobs file (CONFIG_PATH): the backup job definitions

The result is exposed as a plain dict through Config.config.
"""

## version related
__author__ = "Kyle"
__version__ = "0.0.1"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
import os
from typing import List, Mapping

## import 3rd pkgs
import yaml
from apscheduler.triggers.cron import CronTrigger
from apscheduler.util import astimezone

## import private pkgs
from Job import Job
from Errors import ConfigError

_TRUE = ('1', 'true', 'yes', 'on')
_FALSE = ('0', 'false', 'no', 'off')
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

class Config(object):
    """
    Configuration loader.

    Args:
        workpath (str): Project root, the default jobs file is
            <workpath>/etc/backups.yaml
        environ (mapping): Environment, os.environ by default

    Raises:
        ConfigError: A required value is missing or invalid
    """

    def __init__(self, workpath: str, environ: Mapping[str, str] = None) -> None:
        self.workpath = workpath
        self.environ = os.environ if environ is None else environ
        self.config = self.load()

    def _get(self, name: str, default: str = None) -> str:
        value = self.environ.get(name, '').strip()
        return value if value else default

    def _require(self, name: str) -> str:
        value = self._get(name)
        if value is None:
            raise ConfigError('required environment variable %s is not set' % (name))

        return value

    def _bool(self, name: str, default: bool) -> bool:
        value = self._get(name)
        if value is None:
            return default

        if value.lower() in _TRUE:
            return True

        if value.lower() in _FALSE:
            return False

        raise ConfigError('invalid boolean value for %s: %r' % (name, value))

    def _int(self, name: str, default: int) -> int:
        value = self._get(name)
        if value is None:
            return default

        try:
            number = int(value)

        except ValueError as e:
            raise ConfigError('invalid integer value for %s: %r' % (name, value)) from e

        if number <= 0:
            raise ConfigError('%s must be > 0, got %s' % (name, number))

        return number

    def _timezone(self, name: str, default: str) -> str:
        value = self._get(name, default)
        try:
            astimezone(value)

        except (KeyError, ValueError) as e:
            raise ConfigError('unknown timezone for %s: %r' % (name, value)) from e

        return value

    def _level(self, name: str, default: str) -> str:
        value = self._get(name, default).upper()
        if value not in LOG_LEVELS:
            raise ConfigError('invalid log level for %s: %r, expected one of %s' % (name, value, ', '.join(LOG_LEVELS)))

        return value

    @staticmethod
    def normalize_endpoint(endpoint: str, secure: bool) -> str:
        """
        Turn a bare host[:port] into an endpoint URL.

        Args:
            endpoint (str): Host, host:port or URL
            secure (bool): Use https for bare hosts

        Returns:
            str: Endpoint URL
        """

        if '://' in endpoint:
            return endpoint

        return '%s://%s' % ('https' if secure else 'http', endpoint)

    def load(self) -> dict:
        """
        Load the whole configuration.

        Returns:
            dict: Configuration sections
        """

        storage = {
            'endpoint': self.normalize_endpoint(self._require('STORAGE_S3_ENDPOINT'), self._bool('STORAGE_S3_SECURE', True)),
            'region': self._require('STORAGE_S3_REGION'),
            'bucket': self._require('STORAGE_S3_BUCKET'),
            'access_key': self._require('STORAGE_S3_ACCESS_KEY'),
            'secret_key': self._require('STORAGE_S3_SECRET_KEY'),
            'create_if_missing': self._bool('STORAGE_S3_AUTO_CREATE_BUCKET', False),
        }

        scheduler = {
            'timezone': self._timezone('SCHEDULER_TIMEZONE', 'UTC'),
            'max_workers': self._int('SCHEDULER_MAX_WORKERS', 10),
            'misfire_grace_time': self._int('SCHEDULER_MISFIRE_GRACE_TIME', 60),
        }

        log = {
            'level': self._level('LOG_LEVEL', 'INFO'),
            'path': self._get('LOG_PATH'),
        }

        keep_workspace = self._bool('BACKUP_KEEP_WORKSPACE', False)
        config_path = self._get('CONFIG_PATH', os.path.join(self.workpath, 'etc', 'backups.yaml'))

        return {
            'workpath': self.workpath,
            'config_path': config_path,
            'storage': storage,
            'scheduler': scheduler,
            'log': log,
            'keep_workspace': keep_workspace,
            'jobs': self.load_jobs(config_path, keep_workspace),
        }

    @staticmethod
    def load_jobs(path: str, keep_workspace: bool = False) -> List[Job]:
        """
        Load and validate the jobs file.

        Args:
            path (str): YAML jobs file
            keep_workspace (bool): Default for jobs without keep_workspace

        Returns:
            list: Job definitions, in file order

        Raises:
            ConfigError: File is unreadable or a job is invalid
        """

        try:
            with open(path, 'r', encoding = 'utf-8') as fh:
                data = yaml.safe_load(fh)

        except OSError as e:
            raise ConfigError('failed to read configuration file %s: %s' % (path, e)) from e

        except yaml.YAMLError as e:
            raise ConfigError('failed to parse configuration file %s: %s' % (path, e)) from e

        if not isinstance(data, dict) or not isinstance(data.get('jobs'), list):
            raise ConfigError('%s must contain a "jobs" list' % (path))

        jobs = []
        names = set()
        for index, entry in enumerate(data['jobs']):
            job = Config.parse_job(entry, index, keep_workspace)
            if job.name in names:
                raise ConfigError('duplicate job name %r' % (job.name))

            names.add(job.name)
            jobs.append(job)

        return jobs

    @staticmethod
    def parse_job(entry: object, index: int, keep_workspace: bool = False) -> Job:
        """
        Validate one entry of the jobs list.

        Args:
            entry (object): Parsed YAML entry
            index (int): Position in the list, used in error messages
            keep_workspace (bool): Default for keep_workspace

        Returns:
            Job: Job definition
        """

        if not isinstance(entry, dict):
            raise ConfigError('job #%d must be a mapping' % (index))

        name = entry.get('name')
        if not isinstance(name, str) or not name.strip():
            raise ConfigError('job #%d: "name" must be a non-empty string' % (index))

        schedule = entry.get('schedule')
        if not isinstance(schedule, str):
            raise ConfigError('job %r: "schedule" must be a cron expression' % (name))

        try:
            CronTrigger.from_crontab(schedule)

        except ValueError as e:
            raise ConfigError('job %r: invalid schedule %r: %s' % (name, schedule, e)) from e

        script = entry.get('script')
        if not isinstance(script, list) or not script or not all(isinstance(line, str) for line in script):
            raise ConfigError('job %r: "script" must be a non-empty list of strings' % (name))

        artifact_path = entry.get('filepath_to_upload')
        if not isinstance(artifact_path, str) or not artifact_path.strip():
            raise ConfigError('job %r: "filepath_to_upload" must be a non-empty string' % (name))

        timeout = entry.get('timeout')
        if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0):
            raise ConfigError('job %r: "timeout" must be a positive integer' % (name))

        keep = entry.get('keep_workspace', keep_workspace)
        if not isinstance(keep, bool):
            raise ConfigError('job %r: "keep_workspace" must be a boolean' % (name))

        return Job(
            name = name,
            schedule = schedule,
            commands = tuple(script),
            artifact_path = artifact_path,
            timeout = timeout,
            keep_workspace = keep,
        )
