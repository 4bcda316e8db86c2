# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
from mock import MagicMock

from ci_scheduler.push_message import BuildPushMessage
from ci_scheduler.scheduler import events
from ci_scheduler.scheduler.handlers import builds, checks

from tests import SLUG, check_run_user_data, make_build, task_user_data


def build_event(user_data):
    return {
        "msg_id": "1",
        "event": events.BUILD_STATUS_CHANGE,
        "push_message": BuildPushMessage(make_build(), user_data),
    }


class TestCheckHandlers:
    def test_check_suite(self):
        scheduler = MagicMock()
        event = {"action": "requested", "slug": SLUG, "check_suite_id": 7, "head_sha": "abc"}
        checks.check_suite(scheduler, event)
        scheduler.process_check_suite_event.assert_called_once_with(event)

    def test_check_run(self):
        scheduler = MagicMock()
        event = {"action": "rerequested", "slug": SLUG, "check_run_id": 11, "name": "A"}
        checks.check_run(scheduler, event)
        scheduler.process_check_run_event.assert_called_once_with(event)


class TestBuildHandler:
    def test_check_run_notification(self):
        scheduler = MagicMock()
        event = build_event(check_run_user_data(1))
        builds.status_change(scheduler, event)
        scheduler.checks_service.update_check_status.assert_called_once_with(
            event["push_message"])
        scheduler.update_task_status.assert_not_called()

    def test_task_notification(self):
        scheduler = MagicMock()
        event = build_event(task_user_data(1))
        builds.status_change(scheduler, event)
        scheduler.update_task_status.assert_called_once_with(event["push_message"])
        scheduler.checks_service.update_check_status.assert_not_called()

    def test_not_ours(self):
        scheduler = MagicMock()
        assert builds.status_change(scheduler, build_event(None)) is False
        assert builds.status_change(scheduler, build_event('{"other": 1}')) is False
        scheduler.update_task_status.assert_not_called()
        scheduler.checks_service.update_check_status.assert_not_called()

    def test_malformed(self):
        scheduler = MagicMock()
        assert builds.status_change(scheduler, build_event('{"task_id": "x"}')) is False
        scheduler.update_task_status.assert_not_called()
