"""
Backups Manager Service Entry Point

This module provides the main entry point for initializing and running
the Backups Manager service. It is responsible for:

- Loading configuration
- Initializing logging
- Checking (and optionally creating) the destination bucket
- Scheduling every backup job and blocking until shutdown
"""

## version related
__author__ = "Kyle"
__version__ = "0.0.1"
__email__ = "kyle@hacking-linux.com"

## import build in pkgs
import re
import os
import sys
import json
import argparse

## Resolve project root directory
workpath = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))

## Extend Python module search path for project libraries
sys.path.append("%s/lib" % (workpath))

## import private pkgs
from Log import Log
from Config import Config
from Storage import Storage
from Errors import BucketError, ConfigError
from BackupsManagerService import BackupsManagerService

class BackupsManager(object):
    """
    Core Backups Manager controller.

    Lifecycle:
        1. Load configuration
        2. Initialize logging
        3. Connect to object storage
        4. Start BackupsManagerService
    """

    def __init__(self) -> None:
        """
        Initialize the Backups Manager runtime environment.

        Raises:
            ConfigError: Environment or jobs file is invalid
        """

        ## set private values
        self.config = Config(workpath).config
        self.config['pid'] = os.getpid()
        self.config['pname'] = os.path.basename(__file__)
        self.config['name'] = re.sub(r'\..*$', '', self.config['pname'])

        ## logger init
        self.loggerObj = Log(self.config)
        self.logger = self.loggerObj.logger

        ## debug prt
        self.logger.debug({'config_path': self.config['config_path']})
        self.logger.debug({'storage.endpoint': self.config['storage']['endpoint']})
        self.logger.debug({'storage.bucket': self.config['storage']['bucket']})
        self.logger.debug({'jobs': [job.name for job in self.config['jobs']]})

        ## init StorageObj
        self.StorageObj = Storage.from_config(self.logger, self.config['storage'])

    def service(self) -> BackupsManagerService:
        """
        Build the scheduler service with every configured job.

        Returns:
            BackupsManagerService: Service, not started
        """

        svcObj = BackupsManagerService(self.logger,
                                       self.StorageObj,
                                       self.config['storage']['bucket'],
                                       self.config['scheduler']['timezone'],
                                       self.config['scheduler']['max_workers'],
                                       self.config['scheduler']['misfire_grace_time'],
                                       self.config['keep_workspace'],
                                       )
        for job in self.config['jobs']:
            svcObj.add_job(job)

        return svcObj

    def list(self) -> bool:
        """
        Print the configured jobs and their next fire time.

        Returns:
            bool: True
        """

        for job in self.service().list_jobs():
            print(json.dumps(job))

        return True

    def run_once(self, name: str) -> bool:
        """
        Run one job immediately in the foreground.

        Args:
            name (str): Job name

        Returns:
            bool: True if the artifact was uploaded
        """

        jobs = {job.name: job for job in self.config['jobs']}
        if name not in jobs:
            self.logger.error({'status': 'unknown job', 'job': name})
            return False

        self.StorageObj.ensure_bucket(self.config['storage']['bucket'], self.config['storage']['region'], self.config['storage']['create_if_missing'])
        outcome = self.service().run_job(jobs[name])
        return outcome is not None and outcome.succeeded

    def run(self) -> bool:
        """
        Start the Backups Manager service in blocking mode.

        Returns:
            bool: True once the service has stopped
        """

        self.logger.debug({'status': 'start'})
        self.StorageObj.ensure_bucket(self.config['storage']['bucket'], self.config['storage']['region'], self.config['storage']['create_if_missing'])

        ## run on background
        self.service().serve_forever()

        self.logger.debug({'status': 'end'})
        return True

def main() -> None:
    """
    Application entry point.
    """

    parser = argparse.ArgumentParser(description = 'Run scheduled backup jobs and upload their artifacts to S3.')
    parser.add_argument('--list', action = 'store_true', help = 'print configured jobs and exit')
    parser.add_argument('--run-once', metavar = 'NAME', help = 'run one job now and exit')
    args = parser.parse_args()

    try:
        bkmObj = BackupsManager()
        if args.list:
            ok = bkmObj.list()

        elif args.run_once:
            ok = bkmObj.run_once(args.run_once)

        else:
            ok = bkmObj.run()

    except (ConfigError, BucketError) as e:
        print(json.dumps({'status': 'startup failed', 'error': str(e)}), file = sys.stderr)
        sys.exit(1)

    sys.exit(0 if ok else 1)

if __name__ == "__main__":
    """
    Command-line entry point.
    """

    main()
