#!/usr/bin/env python3

"""
SPDX-License-Identifier: CC-BY-4.0

Copyright 2022 VMware Inc, Yordan Karadzhov (VMware) <y.karadz@gmail.com>
"""

import funcslower.session as fs

# Report every call of 'vfs_read' that takes longer than 10 ms. Show the
# name and PID of the process, and the time of the call.
request = fs.session_request('vfs_read', 10000, annotate=True, timestamps=True)

# Configure the tracer and print the live stream of records.
# "Ctrl+c" to stop tracing. The tracer is reset before the script exits.
fs.trace_slow_functions(request)
