"""
SPDX-License-Identifier: LGPL-2.1

Copyright 2022 VMware Inc, Yordan Karadzhov (VMware) <y.karadz@gmail.com>
"""

import enum
import signal
import logging
import threading
import contextlib

from .errors import (ConfigurationRejected, TracerBusy, InvalidThreshold,
                     InvalidPid, UnknownFunction, ActivationFailed,
                     SessionInterrupted, OptionWarning, TeardownWarning)
from .tracefs import control_files, option_value
from .lock import ftrace_lock
from .capture import run_capture, keep_line

logger = logging.getLogger(__name__)

TRACER = 'function_graph'
IDLE_TRACER = 'nop'

INTERRUPT_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGQUIT, signal.SIGHUP)


class session_state(enum.Enum):
    IDLE = 'Idle'
    LOCK_ACQUIRED = 'LockAcquired'
    MODE_VERIFIED_IDLE = 'ModeVerifiedIdle'
    THRESHOLD_SET = 'ThresholdSet'
    PID_FILTER_SET = 'PidFilterSet'
    PATTERN_FILTER_SET = 'PatternFilterSet'
    GRAPH_FILTER_SET = 'GraphFilterSet'
    TRACER_ACTIVE = 'TracerActive'
    OPTIONS_APPLIED = 'OptionsApplied'
    RUNNING = 'Running'
    TORN_DOWN = 'TornDown'


# Request flag, trace option, value to write when the flag is set.
# Applied in this order, only once the tracer is active.
OPTIONS = [
    ('cpu_only',   'sleep-time',        False),
    ('timestamps', 'funcgraph-abstime', True),
    ('annotate',   'funcgraph-proc',    True),
]


class session_request:
    """
    A class used to represent what the user asked to trace.

    Attributes
    ----------
    pattern : string
        Function name or glob, as accepted by set_ftrace_filter.
    threshold : int
        Latency threshold in microseconds.
    pid : int or None
        Only trace while this process is on-CPU.
    duration : int or None
        Buffer for this many seconds. None means live streaming.
    cpu_only : bool
        Measure on-CPU time only (exclude sleep time).
    headers : bool
        Include column headers.
    annotate : bool
        Show process names and PIDs.
    timestamps : bool
        Show absolute timestamps.
    """
    def __init__(self, pattern, threshold, pid=None, duration=None,
                 cpu_only=False, headers=False, annotate=False,
                 timestamps=False):
        """
        Constructor

        Parameters
        ----------
        pattern : string
            Function name or glob.
        threshold : int
            Latency threshold in microseconds.
        pid : int (optional)
            Target process.
        duration : int (optional)
            Capture duration in seconds.
        cpu_only, headers, annotate, timestamps : bool
            Optional flags.
        """
        if not pattern or not str(pattern).strip():
            raise ValueError('A function pattern is required.')

        if int(threshold) < 0:
            raise ValueError('Invalid latency threshold {0}.'.format(threshold))

        if pid is not None and int(pid) <= 0:
            raise ValueError('Invalid PID {0}.'.format(pid))

        if duration is not None and int(duration) < 0:
            raise ValueError('Invalid duration {0}.'.format(duration))

        self.pattern = str(pattern)
        self.threshold = int(threshold)
        self.pid = None if pid is None else int(pid)
        self.duration = None if duration is None else int(duration)
        self.cpu_only = bool(cpu_only)
        self.headers = bool(headers)
        self.annotate = bool(annotate)
        self.timestamps = bool(timestamps)

    @classmethod
    def everything(cls, pattern, threshold, **kwargs):
        """
        Request with headers, process names and timestamps all shown.
        """
        kwargs.update(headers=True, annotate=True, timestamps=True)
        return cls(pattern, threshold, **kwargs)

    def banner(self):
        """
        Describe the session in one line.
        """
        msg = 'Tracing "{0}" slower than {1} us'.format(self.pattern, self.threshold)
        if self.pid is not None:
            msg += ' for PID {0}'.format(self.pid)

        if self.duration is not None:
            return msg + ' for {0} seconds...'.format(self.duration)

        return msg + '... Ctrl-C to end.'

    def __repr__(self):
        return ('session_request(pattern={0.pattern!r}, threshold={0.threshold}, '
                'pid={0.pid}, duration={0.duration})'.format(self))


def _raise_interrupt(signum, frame):
    raise SessionInterrupted(signum)


def _swap_handlers(signals, handler):
    if threading.current_thread() is not threading.main_thread():
        return {}

    return {s: signal.signal(s, handler) for s in signals}


def _restore_handlers(previous):
    for s, h in previous.items():
        signal.signal(s, h)


@contextlib.contextmanager
def interrupt_on_signals(signals=INTERRUPT_SIGNALS):
    """
    Turn termination signals into SessionInterrupted, so that they unwind
    through the session's cleanup instead of killing the process.
    Signal handlers can only be changed from the main thread; elsewhere
    this does nothing.
    """
    previous = _swap_handlers(signals, _raise_interrupt)
    try:
        yield
    finally:
        _restore_handlers(previous)


@contextlib.contextmanager
def _signals_ignored(signals=INTERRUPT_SIGNALS):
    previous = _swap_handlers(signals, signal.SIG_IGN)
    try:
        yield
    finally:
        _restore_handlers(previous)


class slow_session:
    """
    A class used to represent one funcslower tracing session.

    The session owns the tracer from start() until teardown(). Every
    successful configuration write is recorded in the journal, together
    with the value that undoes it, and teardown() replays the journal
    backwards.

    Attributes
    ----------
    request : session_request
        What to trace.
    tfs : control_files
        The tracefs mount.
    lock : ftrace_lock
        The system-wide lock marker.
    state : session_state
        The current state.
    history : list of session_state
        All states reached, in order.
    journal : list of tuples (session_state, string, string)
        Applied writes: the state reached, the setting, and its restore value.
    warnings : list of Warning
        Non-fatal problems met by the session.
    """
    def __init__(self, request, tfs, lock=None):
        """
        Constructor

        Parameters
        ----------
        request : session_request
            What to trace.
        tfs : control_files
            The tracefs mount.
        lock : ftrace_lock (optional)
            The lock marker. If not provided, the default path is used.
        """
        self.request = request
        self.tfs = tfs
        self.lock = lock if lock is not None else ftrace_lock()
        self.state = session_state.IDLE
        self.history = [self.state]
        self.journal = []
        self.warnings = []
        self._touched = False

    def _enter(self, state):
        logger.debug('session: %s -> %s', self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _warn(self, warning):
        logger.warning('%s', warning)
        self.warnings.append(warning)

    def _apply(self, state, name, value, restore, error, msg, verify=False):
        try:
            self.tfs.write_setting(name, value, verify=verify)
        except ConfigurationRejected as err:
            if err.written:
                # The kernel took the write, so it has to be undone too.
                self._touched = True
                self.journal.append((state, name, str(restore)))
            raise error(msg.format(value), step=state.value) from err

        self._touched = True
        self.journal.append((state, name, str(restore)))
        self._enter(state)

    def _apply_options(self):
        if self.state is not session_state.TRACER_ACTIVE:
            raise RuntimeError('Trace options need an active tracer.')

        applied = False
        for flag, option, enable in OPTIONS:
            if not getattr(self.request, flag):
                continue

            value = option_value(option, enable)
            try:
                self.tfs.set_option(option, enable)
            except ConfigurationRejected as err:
                self._warn(OptionWarning('setting {0} failed, continuing without it ({1})'.format(value, err)))
                continue

            self.journal.append((session_state.OPTIONS_APPLIED, 'options',
                                 option_value(option, not enable)))
            applied = True

        if applied:
            self._enter(session_state.OPTIONS_APPLIED)

    def _configure(self):
        mode = self.tfs.read_setting('tracer')
        if mode != IDLE_TRACER:
            raise TracerBusy(mode)

        self._enter(session_state.MODE_VERIFIED_IDLE)

        req = self.request
        self._apply(session_state.THRESHOLD_SET, 'threshold', req.threshold, 0,
                    InvalidThreshold, 'setting tracing_thresh to {0}')

        if req.pid is not None:
            self._apply(session_state.PID_FILTER_SET, 'pid', req.pid, '',
                        InvalidPid, 'setting -p {0} (PID exist?)')

        self._apply(session_state.PATTERN_FILTER_SET, 'filter', req.pattern, '',
                    UnknownFunction, 'enabling "{0}" filter. Function exist?')

        self._apply(session_state.GRAPH_FILTER_SET, 'graph', req.pattern, '',
                    UnknownFunction, 'enabling "{0}" graph-function')

        self._apply(session_state.TRACER_ACTIVE, 'tracer', TRACER, IDLE_TRACER,
                    ActivationFailed, 'setting current_tracer to "{0}"',
                    verify=True)

        self._apply_options()

    def start(self):
        """
        Take the lock and configure the tracer. If anything fails, including
        taking the lock, everything done so far is undone before the error
        is raised.
        """
        if self.state is not session_state.IDLE:
            raise RuntimeError('Session already started ({0}).'.format(self.state.value))

        try:
            self.lock.acquire()
            self._enter(session_state.LOCK_ACQUIRED)
            self._configure()
        except BaseException:
            self.teardown()
            raise

    def run(self, out=None, sleep=None, keep=keep_line):
        """
        Clear the trace buffer and capture the records.

        Parameters
        ----------
        out : file object (optional)
            Where to write the records. If not provided, stdout is used.
        sleep : callable (optional)
            Used to wait in bounded mode.
        keep : callable
            Line filter predicate, used when process names are shown.

        Returns
        -------
        count : int
            Number of lines written.
        """
        if self.state not in (session_state.TRACER_ACTIVE,
                              session_state.OPTIONS_APPLIED):
            raise RuntimeError('Session is not configured ({0}).'.format(self.state.value))

        try:
            self.tfs.clear('trace')
        except ConfigurationRejected as err:
            logger.warning('%s', err)

        self._enter(session_state.RUNNING)
        return run_capture(self.tfs, self.request, out=out, sleep=sleep, keep=keep)

    def teardown(self):
        """
        Undo the configuration, clear the trace buffer and release the lock.
        Failures are reported as TeardownWarning and never stop the sequence.
        Calling this more than once is harmless.
        """
        with _signals_ignored():
            while self.journal:
                state, name, restore = self.journal.pop()
                try:
                    self.tfs.write_setting(name, restore)
                except ConfigurationRejected as err:
                    self._warn(TeardownWarning('undoing {0}: {1}'.format(state.value, err)))

            if self._touched:
                try:
                    self.tfs.clear('trace')
                except ConfigurationRejected as err:
                    self._warn(TeardownWarning('clearing the trace buffer: {0}'.format(err)))

                self._touched = False

            if self.lock.locked:
                try:
                    self.lock.release()
                except OSError as err:
                    self._warn(TeardownWarning('removing {0}: {1}'.format(self.lock.path, err.strerror)))

            if self.state is not session_state.IDLE and \
               self.state is not session_state.TORN_DOWN:
                self._enter(session_state.TORN_DOWN)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.teardown()
        return False


def trace_slow_functions(request, tracing_dir=None, lock_path=None, out=None,
                         sleep=None):
    """
    Run a whole session: configure, capture, and clean up. A signal ends
    the capture gracefully.

    Parameters
    ----------
    request : session_request
        What to trace.
    tracing_dir : string (optional)
        The tracefs mount. If not provided, it is discovered.
    lock_path : string (optional)
        Path to the lock marker.
    out : file object (optional)
        Where to write the records. If not provided, stdout is used.
    sleep : callable (optional)
        Used to wait in bounded mode.

    Returns
    -------
    session : slow_session
        The finished (torn down) session.
    """
    tfs = control_files(tracing_dir)
    lock = ftrace_lock(lock_path) if lock_path else ftrace_lock()
    session = slow_session(request, tfs, lock)

    with interrupt_on_signals():
        try:
            with session:
                session.run(out=out, sleep=sleep)
        except SessionInterrupted as err:
            logger.debug('%s', err)

    return session
