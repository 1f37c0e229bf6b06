"""
Workspace Provisioning Module

Every run gets its own temporary directory, exposed to the job's
commands through the ${TEMP_DIR} placeholder. The directory is
removed when the run ends unless the operator asked to keep it.
"""

## version related
__author__ = "Kyle"
__version__ = "0.0.1"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
import os
import shutil
import tempfile
from contextlib import contextmanager
from typing import Iterator

## import private pkgs
from Errors import WorkspaceError

class Workspace(object):
    """
    Per-run temporary directory manager.
    """

    def __init__(self, logger: object, root: str = None) -> None:
        """
        Initialize the workspace manager.

        Args:
            logger (object): Run logger
            root (str): Parent directory, system temp root by default

        Returns:
            None
        """

        self.logger = logger
        self.root = root or tempfile.gettempdir()

    @staticmethod
    def prefix(name: str, backup_id: str) -> str:
        """
        Build the deterministic part of a workspace directory name.

        Args:
            name (str): Job name
            backup_id (str): Run identifier

        Returns:
            str: Directory name prefix
        """

        ## job names must not escape the temp root
        safe_name = name.replace(os.sep, '_')
        if os.altsep:
            safe_name = safe_name.replace(os.altsep, '_')

        return 'backup-%s-%s-' % (safe_name, backup_id)

    def provision(self, name: str, backup_id: str) -> str:
        """
        Create a new, run-exclusive directory.

        Args:
            name (str): Job name
            backup_id (str): Run identifier

        Returns:
            str: Absolute path of the created directory

        Raises:
            WorkspaceError: Directory could not be created
        """

        try:
            path = tempfile.mkdtemp(prefix = self.prefix(name, backup_id), dir = self.root)

        except OSError as e:
            raise WorkspaceError('failed to create workspace under %s: %s' % (self.root, e)) from e

        path = os.path.abspath(path)
        self.logger.info({'workspace': path})
        return path

    def release(self, path: str) -> None:
        """
        Remove a workspace directory and everything in it.

        Removal failures are logged, never raised: the run outcome
        is already decided when this is called.

        Args:
            path (str): Workspace path

        Returns:
            None
        """

        try:
            shutil.rmtree(path)
            self.logger.info({'workspace': path, 'status': 'removed'})

        except FileNotFoundError:
            self.logger.info({'workspace': path, 'status': 'already removed'})

        except OSError as e:
            self.logger.error({'workspace': path, 'status': 'remove failed', 'error': str(e)})

    @contextmanager
    def acquire(self, name: str, backup_id: str, keep: bool = False) -> Iterator[str]:
        """
        Provision a workspace for the duration of a with block.

        Args:
            name (str): Job name
            backup_id (str): Run identifier
            keep (bool): Skip removal on exit

        Yields:
            str: Workspace path
        """

        path = self.provision(name, backup_id)
        try:
            yield path

        finally:
            if keep:
                self.logger.info({'workspace': path, 'status': 'kept'})

            else:
                self.release(path)
