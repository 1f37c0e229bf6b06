import os
import logging
import threading
import time

import pytest

from Errors import ExecutionError
from CommandRunner import SCRIPT_PREFIX, CommandRunner

def script_records(caplog, level = None):
    return [
        record for record in caplog.records
        if record.getMessage().startswith(SCRIPT_PREFIX) and (level is None or record.levelno == level)
    ]

def test_success_logs_stdout_as_info(logger, caplog):
    CommandRunner(logger).run(['echo hi'])

    records = script_records(caplog, logging.INFO)
    assert [record.getMessage() for record in records] == ['SCRIPT> hi']

def test_stderr_is_logged_as_error(logger, caplog):
    CommandRunner(logger).run(['echo oops >&2'])

    records = script_records(caplog, logging.ERROR)
    assert [record.getMessage() for record in records] == ['SCRIPT> oops']

def test_non_zero_exit_raises(logger):
    with pytest.raises(ExecutionError) as info:
        CommandRunner(logger).run(['exit 1'])

    assert info.value.returncode == 1
    assert not info.value.timed_out

def test_output_before_failure_is_logged(logger, caplog):
    with pytest.raises(ExecutionError) as info:
        CommandRunner(logger).run(['echo before', 'exit 3'])

    assert info.value.returncode == 3
    assert 'SCRIPT> before' in [record.getMessage() for record in script_records(caplog)]

def test_commands_share_one_shell_session(tmp_path, logger, caplog):
    CommandRunner(logger).run([
        'cd %s' % (tmp_path),
        'export GREETING=hello',
        'echo "$GREETING from $(pwd)"',
    ])

    messages = [record.getMessage() for record in script_records(caplog)]
    assert messages == ['SCRIPT> hello from %s' % (tmp_path)]

def test_each_output_line_is_a_record(logger, caplog):
    CommandRunner(logger).run(['printf "one\\ntwo\\nthree\\n"'])

    messages = [record.getMessage() for record in script_records(caplog)]
    assert messages == ['SCRIPT> one', 'SCRIPT> two', 'SCRIPT> three']

def test_format_line():
    assert CommandRunner.format_line(b'plain\n') == 'plain'
    assert CommandRunner.format_line(b'crlf\r\n') == 'crlf'
    assert CommandRunner.format_line(b'a\nb\n') == 'a\\nb'
    assert CommandRunner.format_line(b'\xff\n') == '\ufffd'

def test_missing_shell_raises_without_returncode(logger):
    with pytest.raises(ExecutionError) as info:
        CommandRunner(logger, shell = '/nonexistent/sh').run(['true'])

    assert info.value.returncode is None

def test_deadline_terminates_session(logger):
    started = time.monotonic()
    with pytest.raises(ExecutionError) as info:
        CommandRunner(logger, grace_seconds = 1).run(['sleep 30'], timeout = 0.3)

    assert info.value.timed_out
    assert not info.value.cancelled
    assert time.monotonic() - started < 10

def test_cancellation_terminates_session(logger):
    cancel_event = threading.Event()
    timer = threading.Timer(0.3, cancel_event.set)
    timer.start()

    started = time.monotonic()
    try:
        with pytest.raises(ExecutionError) as info:
            CommandRunner(logger, grace_seconds = 1).run(['sleep 30'], cancel_event = cancel_event)

    finally:
        timer.cancel()

    assert info.value.cancelled
    assert not info.value.timed_out
    assert 'cancelled' in str(info.value)
    assert time.monotonic() - started < 10

def test_zero_timeout_expires_immediately(logger):
    started = time.monotonic()
    with pytest.raises(ExecutionError) as info:
        CommandRunner(logger, grace_seconds = 1).run(['sleep 30'], timeout = 0)

    assert info.value.timed_out
    assert time.monotonic() - started < 10

def test_deadline_covers_background_children(logger):
    started = time.monotonic()
    with pytest.raises(ExecutionError) as info:
        CommandRunner(logger, grace_seconds = 1).run(['sleep 30 &', 'echo spawned'], timeout = 1)

    assert info.value.timed_out
    assert time.monotonic() - started < 10

def test_cancellation_covers_background_children(logger):
    cancel_event = threading.Event()
    timer = threading.Timer(0.5, cancel_event.set)
    timer.start()

    started = time.monotonic()
    try:
        with pytest.raises(ExecutionError) as info:
            CommandRunner(logger, grace_seconds = 1).run(['sleep 30 &', 'echo spawned'], cancel_event = cancel_event)

    finally:
        timer.cancel()

    assert info.value.cancelled
    assert time.monotonic() - started < 10

def test_background_children_that_finish_do_not_fail_the_session(logger, caplog):
    CommandRunner(logger).run(['(sleep 0.3; echo late) &', 'echo early'], timeout = 10)

    messages = [record.getMessage() for record in script_records(caplog)]
    assert messages == ['SCRIPT> early', 'SCRIPT> late']

class InterruptAfterStart(threading.Event):
    """Raises KeyboardInterrupt while waiting, once the session wrote its pid."""

    def __init__(self, pidfile):
        super().__init__()
        self.pidfile = pidfile

    def wait(self, timeout = None):
        if os.path.exists(self.pidfile) and os.path.getsize(self.pidfile) > 0:
            raise KeyboardInterrupt

        return super().wait(timeout)

def test_interrupt_stops_the_process_group(tmp_path, logger):
    pidfile = str(tmp_path / 'pid')
    with pytest.raises(KeyboardInterrupt):
        CommandRunner(logger, grace_seconds = 1).run(['echo $$ > %s' % (pidfile), 'exec sleep 30'], cancel_event = InterruptAfterStart(pidfile))

    with open(pidfile) as fh:
        pgid = int(fh.read())

    with pytest.raises(ProcessLookupError):
        os.killpg(pgid, 0)
