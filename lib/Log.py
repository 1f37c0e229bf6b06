"""
Logging Module

This module builds the application logger. Messages are usually
dicts ({'status': 'start'}), and every record carries two
correlation fields:

- id           backup run identifier
- backup_task  job name

Both default to '-' outside of a run. Run-scoped loggers are
created with Log.bind() and passed explicitly to each component.
"""

## version related
__author__ = "Kyle"
__version__ = "0.0.1"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
import sys
import logging
import logging.handlers

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s id=%(id)s backup_task=%(backup_task)s %(message)s'
RECORD_FIELDS = ('id', 'backup_task')

class ContextFormatter(logging.Formatter):
    """
    Formatter filling the correlation fields missing on a record.
    """

    def format(self, record: logging.LogRecord) -> str:
        for field in RECORD_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, '-')

        return super().format(record)

class Log(object):
    """
    Application logger factory.

    Args:
        config (dict): Application config, uses 'name' and the
            'log' section ('level', 'path', 'max_bytes', 'backup_count')
    """

    def __init__(self, config: dict) -> None:
        self.config = config
        self.formatter = ContextFormatter(LOG_FORMAT)

        log_config = config.get('log', {})
        self.logger = logging.getLogger(config.get('name', 'BackupsManager'))
        self.logger.setLevel(log_config.get('level', 'INFO'))

        ## handlers are attached once per process
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(self.formatter)
            self.logger.addHandler(handler)

            if log_config.get('path'):
                self.add_file_handler(log_config['path'], log_config.get('max_bytes', 10485760), log_config.get('backup_count', 5))

    def add_file_handler(self, path: str, max_bytes: int, backup_count: int) -> None:
        """
        Also write records to a rotating log file.

        Args:
            path (str): Log file path
            max_bytes (int): Rotate when the file reaches this size
            backup_count (int): Rotated files to keep

        Returns:
            None
        """

        handler = logging.handlers.RotatingFileHandler(path, maxBytes = max_bytes, backupCount = backup_count)
        handler.setFormatter(self.formatter)
        self.logger.addHandler(handler)
        self.logger.info({'log_path': path})

    @staticmethod
    def bind(logger: logging.Logger, backup_id: str, name: str) -> logging.LoggerAdapter:
        """
        Create a run-scoped logger.

        Args:
            logger (logging.Logger): Application logger
            backup_id (str): Run identifier
            name (str): Job name

        Returns:
            logging.LoggerAdapter: Logger adding 'id' and 'backup_task'
        """

        return logging.LoggerAdapter(logger, {'id': backup_id, 'backup_task': name})
