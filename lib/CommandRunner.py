"""
Command Runner Module

This module executes the expanded commands of a backup run.
All commands share one shell session, so later commands see the
working directory, variables and files left by earlier ones.

Responsibilities:
- Run the joined command script with `sh -c`
- Forward stdout/stderr line by line into the run logger
- Enforce the optional run deadline and cancellation
"""

## version related
__author__ = "Kyle"
__version__ = "0.0.1"
__email__ = "kyle@hacking-linux.com"

## import builtin pkgs
import os
import signal
import subprocess
import threading
import time
from typing import Sequence

## import private pkgs
from Errors import ExecutionError

## marks subprocess output in the log stream
SCRIPT_PREFIX = 'SCRIPT> '

## seconds between deadline/cancellation checks
POLL_INTERVAL = 0.1

class CommandRunner(object):
    """
    Shell session executor.

    One instance is created per run and bound to the run logger.
    """

    def __init__(self, logger: object, shell: str = 'sh', grace_seconds: float = 5) -> None:
        """
        Initialize the runner.

        Args:
            logger (object): Run logger
            shell (str): Shell executable
            grace_seconds (float): Time between SIGTERM and SIGKILL
                when a session is stopped

        Returns:
            None
        """

        self.logger = logger
        self.shell = shell
        self.grace_seconds = grace_seconds

    @staticmethod
    def format_line(raw: bytes) -> str:
        """
        Normalize one line of subprocess output for logging.

        Args:
            raw (bytes): Line as read from the pipe

        Returns:
            str: Line without trailing newline, embedded newlines escaped
        """

        line = raw.decode('utf-8', errors = 'replace').rstrip('\r\n')
        return line.replace('\n', '\\n')

    def _pump(self, stream: object, is_error: bool) -> None:
        """
        Forward a subprocess stream into the run logger.

        Args:
            stream (object): Binary pipe
            is_error (bool): Stream is stderr

        Returns:
            None
        """

        log = self.logger.error if is_error else self.logger.info
        with stream:
            for raw in iter(stream.readline, b''):
                log('%s%s', SCRIPT_PREFIX, self.format_line(raw))

    def _terminate(self, process: subprocess.Popen, readers: Sequence[threading.Thread]) -> None:
        """
        Stop the whole process group of a shell session.

        The group is signalled even when the shell itself has
        already exited, since background children may still be
        running and holding the output pipes.

        Args:
            process (subprocess.Popen): Shell process
            readers (sequence): Output reader threads

        Returns:
            None
        """

        try:
            os.killpg(process.pid, signal.SIGTERM)

        except ProcessLookupError:
            return

        grace_deadline = time.monotonic() + self.grace_seconds
        try:
            process.wait(timeout = self.grace_seconds)

        except subprocess.TimeoutExpired:
            pass

        for reader in readers:
            reader.join(max(0, grace_deadline - time.monotonic()))

        if process.poll() is None or any(reader.is_alive() for reader in readers):
            self.logger.error({'status': 'session ignored SIGTERM, killing', 'pid': process.pid})
            try:
                os.killpg(process.pid, signal.SIGKILL)

            except ProcessLookupError:
                pass

            process.wait()
            for reader in readers:
                reader.join(self.grace_seconds)

    def _stop_reason(self, deadline: float, timeout: float, cancel_event: threading.Event) -> str:
        if cancel_event is not None and cancel_event.is_set():
            return 'cancelled'

        if deadline is not None and time.monotonic() >= deadline:
            return 'timed out after %ss' % (timeout)

        return None

    def run(self, commands: Sequence[str], timeout: float = None, cancel_event: threading.Event = None) -> None:
        """
        Execute commands in a single shell session.

        The session ends when the shell has exited and both output
        pipes are closed, so background children that keep writing
        are still bound by the deadline and cancellation.

        Args:
            commands (sequence): Expanded commands, in order
            timeout (float): Deadline in seconds, None for no deadline
            cancel_event (threading.Event): Set to abort the session

        Returns:
            None

        Raises:
            ExecutionError: Shell could not start, exited non-zero,
                ran past its deadline or was cancelled
        """

        self.logger.info({'status': 'start', 'commands': len(commands)})
        script = '\n'.join(commands)

        try:
            ## own process group, so the whole tree can be stopped
            process = subprocess.Popen(
                [self.shell, '-c', script],
                stdin = subprocess.DEVNULL,
                stdout = subprocess.PIPE,
                stderr = subprocess.PIPE,
                start_new_session = True,
            )

        except OSError as e:
            raise ExecutionError('failed to start %s: %s' % (self.shell, e)) from e

        readers = [
            threading.Thread(target = self._pump, args = (process.stdout, False), daemon = True),
            threading.Thread(target = self._pump, args = (process.stderr, True), daemon = True),
        ]
        for reader in readers:
            reader.start()

        deadline = time.monotonic() + timeout if timeout is not None else None
        reason = None
        try:
            while process.poll() is None or any(reader.is_alive() for reader in readers):
                reason = self._stop_reason(deadline, timeout, cancel_event)
                if reason:
                    break

                if cancel_event is not None:
                    cancel_event.wait(POLL_INTERVAL)

                else:
                    time.sleep(POLL_INTERVAL)

        except BaseException:
            ## the session is outside our signal group, stop it before leaving
            self.logger.error({'status': 'interrupted', 'pid': process.pid})
            self._terminate(process, readers)
            raise

        if reason:
            self.logger.error({'status': reason, 'pid': process.pid})
            self._terminate(process, readers)

        returncode = process.returncode
        self.logger.info({'status': 'end', 'returncode': returncode})

        if reason:
            cancelled = reason == 'cancelled'
            raise ExecutionError('shell session %s' % (reason), returncode = returncode, timed_out = not cancelled, cancelled = cancelled)

        if returncode != 0:
            raise ExecutionError('shell session exited with status %s' % (returncode), returncode = returncode)
