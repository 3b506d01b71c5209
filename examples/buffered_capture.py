#!/usr/bin/env python3

"""
SPDX-License-Identifier: CC-BY-4.0

Copyright 2022 VMware Inc, Yordan Karadzhov (VMware) <y.karadz@gmail.com>
"""

import io
import sys

import funcslower.session as fs
import funcslower.tracefs as tfs

if __name__ == "__main__":
    if len(sys.argv) < 3:
        print('Usage: ', sys.argv[0], ' [FUNCTION] [LATENCY_US] [SECONDS]')
        sys.exit(1)

    seconds = int(sys.argv[3]) if len(sys.argv) > 3 else 5

    # Capture into the kernel buffer for a few seconds, on-CPU time only,
    # and keep the records in memory instead of printing them.
    request = fs.session_request(sys.argv[1], int(sys.argv[2]),
                                 duration=seconds, cpu_only=True)
    session = fs.slow_session(request, tfs.control_files())

    buf = io.StringIO()
    with session:
        session.run(out=buf)

    records = buf.getvalue().splitlines()
    print('{0} trace lines for {1} in {2} seconds'.format(len(records), sys.argv[1], seconds))
    for warning in session.warnings:
        print('warning:', warning)
