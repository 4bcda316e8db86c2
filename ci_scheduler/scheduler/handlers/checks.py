# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Handlers for the check suite and check run webhooks of GitHub. """

from ci_scheduler import log


def check_suite(scheduler, event):
    """Called whenever a check suite of a pull request is requested or re-requested.

    :param Scheduler scheduler: the scheduler handling the event.
    :param dict event: the parsed check_suite event.
    """
    log.info("Check suite %s of %s@%s was %s",
             event["check_suite_id"], event["slug"], event["head_sha"], event["action"])
    return scheduler.process_check_suite_event(event)


def check_run(scheduler, event):
    """Called whenever a check run is re-requested.

    :param Scheduler scheduler: the scheduler handling the event.
    :param dict event: the parsed check_run event.
    """
    log.info("Check run %s %r of %s was %s",
             event["check_run_id"], event["name"], event["slug"], event["action"])
    return scheduler.process_check_run_event(event)
