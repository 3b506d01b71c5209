"""
SPDX-License-Identifier: LGPL-2.1

Copyright 2022 VMware Inc, Yordan Karadzhov (VMware) <y.karadz@gmail.com>
"""

import os
import sys
import logging

import click

from .errors import FuncslowerError
from .lock import DEFAULT_LOCK
from .session import session_request, trace_slow_functions

logger = logging.getLogger(__name__)

EPILOG = """\b
Examples:
  funcslower vfs_read 10000         # trace vfs_read() slower than 10 ms
  funcslower -P 'ext3fs_*' 100      # trace ext3fs_*() slower than 100 us
  funcslower -H ext3fs_readdir 100  # ... with column headers
  funcslower -p 181 sys_read 1000   # trace sys_read() slower than 1 ms for PID 181
  funcslower -d 1 vfs_read 10       # buffered mode, dump after one second
"""


def setup_logging(verbose=0):
    logging.basicConfig(stream=sys.stderr,
                        level=logging.DEBUG if verbose else logging.INFO,
                        format='%(levelname)s: %(message)s',
                        force=True)


@click.command(context_settings={'help_option_names': ['-h', '--help']},
               epilog=EPILOG)
@click.option('-a', 'show_all', is_flag=True, help='all info (same as -HPt)')
@click.option('-C', 'cpu_only', is_flag=True, help='measure on-CPU time only')
@click.option('-d', 'duration', type=click.IntRange(min=0), metavar='SECONDS',
              help='trace duration, and use buffers')
@click.option('-H', 'headers', is_flag=True, help='include column headers')
@click.option('-p', 'pid', type=click.IntRange(min=1), metavar='PID',
              help='trace when this pid is on-CPU')
@click.option('-P', 'annotate', is_flag=True, help='show process names & PIDs')
@click.option('-t', 'timestamps', is_flag=True, help='show timestamps')
@click.option('--tracing-dir', envvar='FUNCSLOWER_TRACING', metavar='PATH',
              help='tracefs mount point (default: discovered)')
@click.option('--lock-file', envvar='FUNCSLOWER_LOCK', default=DEFAULT_LOCK,
              show_default=True, metavar='PATH', help='ftrace lock marker')
@click.option('-v', '--verbose', count=True, help='log every control file access')
@click.argument('funcstring')
@click.argument('latency_us', type=click.IntRange(min=0))
@click.pass_context
def main(ctx, show_all, cpu_only, duration, headers, pid, annotate,
         timestamps, tracing_dir, lock_file, verbose, funcstring, latency_us):
    """Trace kernel functions slower than a threshold, using the ftrace
    function_graph tracer."""
    setup_logging(verbose)

    factory = session_request.everything if show_all else session_request
    try:
        request = factory(funcstring, latency_us, pid=pid, duration=duration,
                          cpu_only=cpu_only, headers=headers,
                          annotate=annotate, timestamps=timestamps)
    except ValueError as err:
        raise click.BadParameter(str(err)) from err

    click.echo(request.banner(), err=True)

    try:
        session = trace_slow_functions(request, tracing_dir=tracing_dir,
                                       lock_path=lock_file)
    except BrokenPipeError:
        # The reader went away. Keep the interpreter from failing on the
        # final flush of stdout.
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        ctx.exit(0)
    except FuncslowerError as err:
        logger.error('%s. Exiting.', err)
        ctx.exit(1)

    click.echo('\nEnding tracing...', err=True)
    if session.warnings:
        logger.debug('%d warnings during the session', len(session.warnings))


if __name__ == '__main__':
    main()
