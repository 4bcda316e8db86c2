# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Handlers for the build notifications of the executor. """

from ci_scheduler import log
from ci_scheduler.common.errors import CorrelationError
from ci_scheduler.push_message import CheckRunCorrelation, TaskCorrelation, decode_user_data


def status_change(scheduler, event):
    """Called whenever the status of a build changes on the executor.

    Presubmit builds update their check run, postsubmit builds their task.

    :param Scheduler scheduler: the scheduler handling the event.
    :param dict event: the parsed build notification.
    :return: True if a check run or a task was updated.
    """
    push_message = event["push_message"]
    try:
        correlation = decode_user_data(push_message.user_data)
    except CorrelationError as e:
        log.warning("Dropping notification %r of %r: %s", event["msg_id"], push_message.build, e)
        return False

    if isinstance(correlation, CheckRunCorrelation):
        return scheduler.checks_service.update_check_status(push_message)
    if isinstance(correlation, TaskCorrelation):
        return scheduler.update_task_status(push_message)

    log.debug("Notification %r of %r is not ours", event["msg_id"], push_message.build)
    return False
