# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Defines custom exceptions """


class ValidationError(ValueError):
    pass


class ConfigurationError(ValidationError):
    """Raised when a scheduling configuration is malformed and must be rejected as a whole"""


class NotFound(ValueError):
    pass


class ProgrammingError(ValueError):
    pass


class BackendError(RuntimeError):
    """Transient failure of the executor or of the network, worth retrying"""


class ExecutorError(RuntimeError):
    """The executor rejected a request"""


class BuildScheduleError(RuntimeError):
    """Raised when some of the requested try builds could not be enqueued

    :param list failed: names of the targets whose builds were not enqueued.
    """

    def __init__(self, message, failed=None):
        super(BuildScheduleError, self).__init__(message)
        self.failed = failed or []


class IgnoreMessage(Exception):
    """Raise if message received from message bus should be ignored"""


class CorrelationError(IgnoreMessage):
    """Raise if the correlation payload of a build notification is malformed"""
