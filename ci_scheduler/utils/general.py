# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Utility functions for ci_scheduler. """
import fnmatch
import functools
import time

from ci_scheduler import log


def retry(timeout=120, interval=30, wait_on=Exception, attempts=None, backoff=1):
    """ A decorator that allows to retry a section of code...
    ...until success, timeout or until the attempts are exhausted.

    :param timeout: seconds after which no further attempt is made, or None.
    :param interval: seconds to wait before the second attempt.
    :param wait_on: exception class (or tuple of them) which triggers a retry.
    :param attempts: maximum number of attempts, or None for no limit.
    :param backoff: factor the interval is multiplied with after each failure.
    """
    def wrapper(function):
        @functools.wraps(function)
        def inner(*args, **kwargs):
            start = time.time()
            delay = interval
            attempt = 0
            while True:
                attempt += 1
                try:
                    return function(*args, **kwargs)
                except wait_on as e:
                    if attempts is not None and attempt >= attempts:
                        raise
                    if timeout is not None and (time.time() - start) >= timeout:
                        raise
                    log.warning("Exception %r raised from %r.  Retry in %rs", e, function, delay)
                    time.sleep(delay)
                    delay *= backoff
        return inner
    return wrapper


def matches_any_glob(paths, globs):
    """
    Tells whether at least one of the paths matches at least one of the globs.

    :param list paths: file paths relative to the repository root.
    :param list globs: shell-style patterns, e.g. ``dev/**`` or ``*.md``.
    :rtype: bool
    """
    for path in paths:
        for pattern in globs:
            if fnmatch.fnmatchcase(path, pattern):
                return True
    return False

