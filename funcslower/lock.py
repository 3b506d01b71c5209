"""
SPDX-License-Identifier: LGPL-2.1

Copyright 2022 VMware Inc, Yordan Karadzhov (VMware) <y.karadz@gmail.com>
"""

import os
import logging

from .errors import AccessError, AlreadyLocked

logger = logging.getLogger(__name__)

DEFAULT_LOCK = '/var/tmp/.ftrace-lock'


class ftrace_lock:
    """ System-wide marker file, owned by one tracing session at a time.
    """
    def __init__(self, path=DEFAULT_LOCK):
        """ Constructor.
        """
        self.path = path
        self.pid = None

    @property
    def locked(self):
        """ Is the marker held by this object.
        """
        return self.pid is not None

    def owner(self):
        """ Get the PID recorded in an existing marker, or None.
        """
        try:
            with open(self.path) as f:
                content = f.read().strip()
        except OSError:
            return None

        return int(content) if content.isdigit() else None

    def acquire(self):
        """ Create the marker with the PID of the current process.
        """
        if self.locked:
            return

        pid = os.getpid()
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError as err:
            raise AlreadyLocked(self.owner(), self.path) from err
        except OSError as err:
            raise AccessError('unable to write {0}: {1}'.format(self.path, err.strerror)) from err

        # The marker exists from here on, release() must be able to remove it.
        self.pid = pid
        try:
            os.write(fd, '{0}\n'.format(pid).encode())
        except OSError as err:
            os.unlink(self.path)
            self.pid = None
            raise AccessError('unable to write {0}: {1}'.format(self.path, err.strerror)) from err
        finally:
            os.close(fd)

        logger.debug('lock %s taken by PID %d', self.path, pid)

    def release(self):
        """ Remove the marker, if it was created by this object.
        """
        if not self.locked:
            return

        try:
            os.unlink(self.path)
        except FileNotFoundError:
            logger.debug('lock %s already removed', self.path)

        logger.debug('lock %s released', self.path)
        self.pid = None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.release()
        return False
