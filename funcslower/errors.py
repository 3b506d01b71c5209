"""
SPDX-License-Identifier: LGPL-2.1

Copyright 2022 VMware Inc, Yordan Karadzhov (VMware) <y.karadz@gmail.com>
"""


class FuncslowerError(Exception):
    """ Base class of all fatal session errors.
    """


class AccessError(FuncslowerError):
    """ The tracing control surface is missing, unmounted or not accessible.
    """


class EndpointUnavailable(AccessError):
    """ A control file could not be read.
    """


class AlreadyLocked(FuncslowerError):
    """
    Another session owns the tracer.

    Attributes
    ----------
    owner : int or None
        PID recorded in the lock marker.
    path : string
        Path to the lock marker.
    """
    def __init__(self, owner, path):
        self.owner = owner
        self.path = path
        super().__init__('ftrace may be in use by PID {0} {1}'.format(owner, path))


class ConfigurationRejected(FuncslowerError):
    """
    A control file refused a value.

    Attributes
    ----------
    name : string
        Logical name of the setting.
    value : string
        The value that was attempted.
    written : bool
        The write itself went through, but the value did not stick.
    """
    def __init__(self, name, value, reason='', written=False):
        self.name = name
        self.value = value
        self.written = written
        msg = 'writing \'{0}\' to {1} was rejected'.format(value, name)
        if reason:
            msg += ': {0}'.format(reason)
        super().__init__(msg)


class TracerBusy(FuncslowerError):
    """ The tracer is already active under another mode.
    """
    def __init__(self, mode):
        self.mode = mode
        super().__init__('ftrace active (current_tracer={0})'.format(mode))


class SetupError(FuncslowerError):
    """
    A required configuration write failed after the lock was taken.

    Attributes
    ----------
    step : string
        Name of the session state that could not be reached.
    """
    def __init__(self, msg, step=None):
        self.step = step
        super().__init__(msg)


class InvalidThreshold(SetupError):
    pass


class InvalidPid(SetupError):
    pass


class UnknownFunction(SetupError):
    pass


class ActivationFailed(SetupError):
    pass


class SessionInterrupted(FuncslowerError):
    """ A termination signal asked the session to end.
    """
    def __init__(self, signum):
        self.signum = signum
        super().__init__('interrupted by signal {0}'.format(signum))


class OptionWarning(UserWarning):
    """ An optional trace option was rejected. The session goes on without it.
    """


class TeardownWarning(UserWarning):
    """ One step of the teardown sequence failed.
    """
