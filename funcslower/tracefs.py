"""
SPDX-License-Identifier: LGPL-2.1

Copyright 2022 VMware Inc, Yordan Karadzhov (VMware) <y.karadz@gmail.com>
"""

import os
import logging

from .errors import AccessError, EndpointUnavailable, ConfigurationRejected

logger = logging.getLogger(__name__)

# Logical setting name -> control file in the tracefs mount.
SETTINGS = {
    'tracer':     'current_tracer',
    'filter':     'set_ftrace_filter',
    'graph':      'set_graph_function',
    'threshold':  'tracing_thresh',
    'pid':        'set_ftrace_pid',
    'options':    'trace_options',
    'trace':      'trace',
    'trace_pipe': 'trace_pipe',
}

DEFAULT_DIRS = ['/sys/kernel/tracing', '/sys/kernel/debug/tracing']

# Process names in the records are arbitrary bytes. Undecodable bytes are
# shown as escapes instead of stopping the capture.
TRACE_ERRORS = 'backslashreplace'


def find_tracefs(mounts='/proc/mounts'):
    """
    Locate the tracefs mount point of the current system.

    Parameters
    ----------
    mounts : string
        Path to the mount table to scan.

    Returns
    -------
    path : string
        The tracing directory. If nothing is mounted, the first existing
        default location, or the last default if none exists.
    """
    debugfs = None
    try:
        with open(mounts) as f:
            for line in f:
                fields = line.split()
                if len(fields) < 3:
                    continue

                if fields[2] == 'tracefs':
                    return fields[1]

                if fields[2] == 'debugfs' and debugfs is None:
                    debugfs = os.path.join(fields[1], 'tracing')
    except OSError as err:
        logger.debug('cannot read %s: %s', mounts, err)

    if debugfs is not None and os.path.isdir(debugfs):
        return debugfs

    for d in DEFAULT_DIRS:
        if os.path.isdir(d):
            return d

    return DEFAULT_DIRS[-1]


class control_files:
    """
    A class used to represent the control files of a tracefs mount.

    Attributes
    ----------
    path : string
        The tracing directory.
    """
    def __init__(self, path=None):
        """
        Constructor

        Parameters
        ----------
        path : string (optional)
            The tracing directory. If not provided, the mount is discovered
            using find_tracefs().
        """
        if path is None:
            path = find_tracefs()

        self.path = path
        self.check_access()

    def check_access(self):
        """
        Make sure the tracing directory is mounted and usable. Nothing has
        been modified when this fails.
        """
        tracer = os.path.join(self.path, SETTINGS['tracer'])
        if not os.path.isdir(self.path) or not os.path.exists(tracer):
            raise AccessError('accessing tracing at {0}. Root user? Kernel has FTRACE? '
                              'tracefs mounted? (mount -t tracefs tracefs /sys/kernel/tracing)'.format(self.path))

        if not os.access(tracer, os.R_OK | os.W_OK):
            raise AccessError('no permission to configure {0}. Root user?'.format(self.path))

    def endpoint(self, name):
        """
        Get the path to the control file of a setting.

        Parameters
        ----------
        name : string
            Logical setting name, one of the keys of SETTINGS.

        Returns
        -------
        path : string
            Full path to the control file.
        """
        return os.path.join(self.path, SETTINGS[name])

    def write_setting(self, name, value, verify=False):
        """
        Write a value to a control file and make sure it was accepted.

        Parameters
        ----------
        name : string
            Logical setting name.
        value : string or int
            The value to write. An empty string clears the setting.
        verify : bool
            If True, read the setting back and compare it with the value.
        """
        value = str(value)
        path = self.endpoint(name)
        logger.debug('echo \'%s\' > %s', value, path)

        # Control files are never created and writes always truncate,
        # the same as a shell redirection.
        try:
            fd = os.open(path, os.O_WRONLY | os.O_TRUNC)
            try:
                os.write(fd, (value + '\n').encode())
            finally:
                os.close(fd)
        except OSError as err:
            raise ConfigurationRejected(name, value, err.strerror) from err

        if verify:
            try:
                current = self.read_setting(name)
            except EndpointUnavailable as err:
                raise ConfigurationRejected(name, value, 'cannot read back',
                                            written=True) from err

            if current != value:
                raise ConfigurationRejected(name, value,
                                            'read back \'{0}\''.format(current),
                                            written=True)

    def read_setting(self, name):
        """
        Read the current value of a control file.

        Parameters
        ----------
        name : string
            Logical setting name.

        Returns
        -------
        value : string
            The content, without trailing whitespace.
        """
        path = self.endpoint(name)
        try:
            with open(path) as f:
                value = f.read().rstrip()
        except OSError as err:
            raise EndpointUnavailable('reading {0}: {1}'.format(path, err.strerror)) from err

        logger.debug('%s = \'%s\'', path, value)
        return value

    def clear(self, name):
        """
        Clear a setting (or the trace buffer).
        """
        self.write_setting(name, '')

    def set_option(self, option, enable=True):
        """
        Toggle one flag of the trace options register.

        Parameters
        ----------
        option : string
            The name of the option, for example 'funcgraph-proc'.
        enable : bool
            Set or clear the option.
        """
        self.write_setting('options', option_value(option, enable))

    def read_buffer(self):
        """
        Read the whole trace buffer.

        Returns
        -------
        lines : list of strings
            The buffered lines, including the newline characters.
        """
        path = self.endpoint('trace')
        try:
            with open(path, errors=TRACE_ERRORS) as f:
                return f.readlines()
        except OSError as err:
            raise EndpointUnavailable('reading {0}: {1}'.format(path, err.strerror)) from err

    def open_pipe(self):
        """
        Open the live stream of trace records. Reads block until records
        are available.
        """
        path = self.endpoint('trace_pipe')
        try:
            return open(path, errors=TRACE_ERRORS)
        except OSError as err:
            raise EndpointUnavailable('opening {0}: {1}'.format(path, err.strerror)) from err

    def __repr__(self):
        return 'control_files({0!r})'.format(self.path)


def option_value(option, enable=True):
    """ Value written to trace_options to set or clear an option.
    """
    return option if enable else 'no' + option
