#!/usr/bin/env python3

"""
SPDX-License-Identifier: LGPL-2.1

Copyright 2022 VMware Inc, Yordan Karadzhov (VMware) <y.karadz@gmail.com>
"""

import io
import os
import sys
import signal
import tempfile
import unittest
import funcslower.capture as fc
import funcslower.tracefs as tfs
from funcslower.errors import SessionInterrupted
from funcslower.session import session_request

separator = ' ------------------------------------------\n'
blank = '\n'
switch = ' 0)  supervi-1699  =>  supervi-1693\n'
record = ' 0)  supervi-1699  | ! 10253.42 us |  } /* vfs_read */\n'

buffer_lines = ['# tracer: function_graph\n',
                '#\n',
                '# CPU  DURATION                  FUNCTION CALLS\n',
                '# |     |   |                     |   |   |   |\n',
                record]


class counting_files(tfs.control_files):
    def __init__(self, path):
        super().__init__(path)
        self.buffer_reads = 0

    def read_buffer(self):
        self.buffer_reads += 1
        return super().read_buffer()


def make_tracefs(root, trace_lines, pipe_lines):
    for name in tfs.SETTINGS.values():
        open(os.path.join(root, name), 'w').close()

    with open(os.path.join(root, 'current_tracer'), 'w') as f:
        f.write('function_graph\n')
    with open(os.path.join(root, 'trace'), 'w') as f:
        f.writelines(trace_lines)
    with open(os.path.join(root, 'trace_pipe'), 'w') as f:
        f.writelines(pipe_lines)

    return counting_files(root)


class LineFilterTestCase(unittest.TestCase):
    def test_keep_line(self):
        self.assertFalse(fc.keep_line(separator))
        self.assertFalse(fc.keep_line(blank))
        self.assertFalse(fc.keep_line('   \t\n'))
        self.assertFalse(fc.keep_line(switch))
        self.assertTrue(fc.keep_line(record))
        self.assertTrue(fc.keep_line(' 1)               |  vfs_read() {\n'))

    def test_filter_lines(self):
        lines = [separator, blank, switch, record]
        self.assertEqual(list(fc.filter_lines(lines)), [record])
        self.assertEqual(list(fc.filter_lines(lines, keep=lambda l: True)), lines)

    def test_strip_headers(self):
        self.assertEqual(fc.strip_headers(buffer_lines), [record])


class CaptureTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.files = make_tracefs(self.tmp.name, buffer_lines,
                                  [separator, blank, switch, record])
        self.out = io.StringIO()
        self.sleeps = []

    def tearDown(self):
        self.tmp.cleanup()

    def sleep(self, seconds):
        self.sleeps.append(seconds)

    def test_bounded(self):
        count = fc.bounded_capture(self.files, 3, out=self.out, sleep=self.sleep)
        self.assertEqual(self.sleeps, [3])
        self.assertEqual(self.files.buffer_reads, 1)
        self.assertEqual(self.out.getvalue(), record)
        self.assertEqual(count, 1)

    def test_bounded_headers(self):
        fc.bounded_capture(self.files, 1, headers=True, out=self.out, sleep=self.sleep)
        self.assertEqual(self.sleeps, [1])
        self.assertEqual(self.files.buffer_reads, 1)
        self.assertEqual(self.out.getvalue(), ''.join(buffer_lines))

    def test_bounded_interrupted(self):
        def interrupted(seconds):
            self.sleeps.append(seconds)
            raise SessionInterrupted(signal.SIGINT)

        fc.bounded_capture(self.files, 60, out=self.out, sleep=interrupted)
        self.assertEqual(self.sleeps, [60])
        self.assertEqual(self.files.buffer_reads, 1)
        self.assertEqual(self.out.getvalue(), record)

    def test_live(self):
        count = fc.live_capture(self.files, out=self.out)
        self.assertEqual(self.files.buffer_reads, 0)
        self.assertEqual(self.out.getvalue(), separator + blank + switch + record)
        self.assertEqual(count, 4)

    def test_live_annotate(self):
        fc.live_capture(self.files, annotate=True, out=self.out)
        self.assertEqual(self.out.getvalue(), record)

    def test_live_headers(self):
        fc.live_capture(self.files, headers=True, out=self.out)
        self.assertEqual(self.files.buffer_reads, 1)
        expected = ''.join(buffer_lines) + separator + blank + switch + record
        self.assertEqual(self.out.getvalue(), expected)

    def test_live_headers_annotate(self):
        with open(os.path.join(self.tmp.name, 'trace'), 'w') as f:
            f.writelines(buffer_lines[:-1] + [switch, separator])

        fc.live_capture(self.files, headers=True, annotate=True, out=self.out)
        self.assertEqual(self.out.getvalue(), ''.join(buffer_lines[:-1]) + record)

    def test_undecodable_process_name(self):
        raw = b' 0)  bad\xff\xfe-1699  | ! 10253.42 us |  } /* vfs_read */\n'
        with open(os.path.join(self.tmp.name, 'trace_pipe'), 'wb') as f:
            f.write(raw)
        with open(os.path.join(self.tmp.name, 'trace'), 'wb') as f:
            f.write(b'# tracer: function_graph\n' + raw)

        escaped = ' 0)  bad\\xff\\xfe-1699  | ! 10253.42 us |  } /* vfs_read */\n'
        count = fc.live_capture(self.files, annotate=True, out=self.out)
        self.assertEqual(count, 1)
        self.assertEqual(self.out.getvalue(), escaped)

        out = io.StringIO()
        fc.bounded_capture(self.files, 0, out=out, sleep=lambda s: None)
        self.assertEqual(out.getvalue(), escaped)

    def test_live_custom_filter(self):
        fc.live_capture(self.files, annotate=True, out=self.out,
                        keep=lambda line: 'supervi' in line)
        self.assertEqual(self.out.getvalue(), switch + record)

    def test_run_capture(self):
        bounded = session_request('vfs_read', 10, duration=2)
        fc.run_capture(self.files, bounded, out=self.out, sleep=self.sleep)
        self.assertEqual(self.sleeps, [2])
        self.assertEqual(self.out.getvalue(), record)

        live = session_request('vfs_read', 10, annotate=True)
        out = io.StringIO()
        fc.run_capture(self.files, live, out=out, sleep=self.sleep)
        self.assertEqual(self.sleeps, [2])
        self.assertEqual(out.getvalue(), record)


if __name__ == '__main__':
    unittest.main()
