"""
SPDX-License-Identifier: LGPL-2.1

Copyright 2022 VMware Inc, Yordan Karadzhov (VMware) <y.karadz@gmail.com>
"""

import sys
import time
import logging

from .errors import SessionInterrupted

logger = logging.getLogger(__name__)

# Third field of a function_graph context switch line, for example
# " 0)  supervi-1699  =>  supervi-1693".
SWITCH_MARKER = '=>'


def keep_line(line):
    """
    Decide if a trace line is worth showing when the records already carry
    the process name and PID.

    Parameters
    ----------
    line : string
        A line of function_graph output.

    Returns
    -------
    keep : bool
        False for blank lines, separator lines and process switch lines.
    """
    text = line.strip()
    if not text:
        return False

    if not text.strip('-'):
        return False

    fields = text.split()
    if len(fields) > 2 and fields[2] == SWITCH_MARKER:
        return False

    return True


def filter_lines(lines, keep=keep_line):
    """ Lazily yield the lines accepted by the predicate.
    """
    for line in lines:
        if keep(line):
            yield line


def strip_headers(lines):
    """ Drop the comment lines ('#') of the trace buffer.
    """
    return [line for line in lines if not line.startswith('#')]


def _emit(lines, out, flush=False):
    count = 0
    for line in lines:
        out.write(line)
        if flush:
            out.flush()
        count += 1

    return count


def bounded_capture(tfs, duration, headers=False, out=None, sleep=None):
    """
    Let the kernel fill its buffer for a fixed time, then dump it once.

    Parameters
    ----------
    tfs : control_files
        The tracefs mount.
    duration : int
        Number of seconds to wait.
    headers : bool
        Keep the column headers of the buffer.
    out : file object (optional)
        Where to write the records. If not provided, stdout is used.
    sleep : callable (optional)
        Used to wait for the given duration. If not provided, time.sleep
        is used.

    Returns
    -------
    count : int
        Number of lines written.
    """
    if out is None:
        out = sys.stdout
    sleep = sleep or time.sleep
    try:
        sleep(duration)
    except SessionInterrupted as err:
        # Ending the wait early still shows what was captured so far.
        logger.info('%s, dumping the trace buffer', err)

    lines = tfs.read_buffer()
    if not headers:
        lines = strip_headers(lines)

    count = _emit(lines, out)
    out.flush()
    return count


def live_capture(tfs, headers=False, annotate=False, out=None, keep=keep_line):
    """
    Forward the records from the live trace stream, until the stream ends
    or the session is interrupted.

    Parameters
    ----------
    tfs : control_files
        The tracefs mount.
    headers : bool
        Print the buffer snapshot first. It carries the column headers
        the live stream lacks.
    annotate : bool
        The records carry process names, apply the line filter.
    out : file object (optional)
        Where to write the records. If not provided, stdout is used.
    keep : callable
        Line filter predicate.

    Returns
    -------
    count : int
        Number of lines written.
    """
    if out is None:
        out = sys.stdout
    count = 0

    if headers:
        snapshot = tfs.read_buffer()
        if annotate:
            snapshot = filter_lines(snapshot, keep)

        count += _emit(snapshot, out, flush=True)

    with tfs.open_pipe() as pipe:
        lines = filter_lines(pipe, keep) if annotate else pipe
        count += _emit(lines, out, flush=True)

    logger.debug('trace stream ended after %d lines', count)
    return count


def run_capture(tfs, request, out=None, sleep=None, keep=keep_line):
    """
    Capture in the mode selected by the request: bounded if it has a
    duration, live otherwise.
    """
    if request.duration is not None:
        return bounded_capture(tfs, request.duration,
                               headers=request.headers,
                               out=out,
                               sleep=sleep)

    return live_capture(tfs,
                        headers=request.headers,
                        annotate=request.annotate,
                        out=out,
                        keep=keep)
