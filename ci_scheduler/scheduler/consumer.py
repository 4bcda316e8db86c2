# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""
The consumer of the messages received from GitHub and from the executor.

Every message is parsed into an event and passed to the handler of that
event, see ci_scheduler.scheduler.handlers.
"""

import inspect
import pprint

from ci_scheduler import log
from ci_scheduler.common.errors import IgnoreMessage
from ci_scheduler.scheduler import events
from ci_scheduler.scheduler.handlers import builds, checks
from ci_scheduler.scheduler.parser import MessageParser


class SchedulerConsumer(object):
    """
    :param Scheduler scheduler: the scheduler the handlers act on.
    :param MessageParser parser: parses the received messages.
    """

    def __init__(self, scheduler, parser=None):
        self.scheduler = scheduler
        self.parser = parser or MessageParser()

        # Our main lookup table for figuring out what to run in response to
        # what messaging events.
        self.on_event = {
            events.GITHUB_CHECK_SUITE: checks.check_suite,
            events.GITHUB_CHECK_RUN: checks.check_run,
            events.BUILD_STATUS_CHANGE: builds.status_change,
        }
        self.sanity_check()

    def sanity_check(self):
        """ On startup, make sure our implementation is sane. """
        for event in (events.GITHUB_CHECK_SUITE, events.GITHUB_CHECK_RUN,
                      events.BUILD_STATUS_CHANGE):
            if event not in self.on_event:
                raise KeyError("Event %r not handled." % event)

        expected = ["scheduler", "event"]
        for event, handler in self.on_event.items():
            argspec = list(inspect.signature(handler).parameters)
            if argspec != expected:
                raise ValueError("Callback %r, event %r has argspec %r!=%r" % (
                    handler, event, argspec, expected))

    def consume(self, message):
        """
        Processes a message, logging instead of raising any failure.

        :return: the result of the handler, or None.
        """
        try:
            return self.process_message(message)
        except IgnoreMessage as e:
            log.info("Ignoring message %r: %s", message.get("msg_id"), e)
        except Exception:
            log.exception("Failed while handling %r", message.get("msg_id"))
            log.info(pprint.pformat(message))
        return None

    def process_message(self, message):
        """
        Parses the message and calls the handler of its event.

        Failures of the handler are propagated.
        """
        event = self.parser.parse(message)
        if event is None:
            log.debug("Unhandled message %r on %r", message.get("msg_id"), message.get("topic"))
            return None

        handler = self.on_event[event["event"]]
        idx = "%s: %s, %s" % (handler.__name__, event["event"], event["msg_id"])
        log.info("Calling %s", idx)
        result = handler(self.scheduler, event)
        log.info("Done with %s", idx)
        return result
