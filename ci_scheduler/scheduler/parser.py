# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT

import re

from ci_scheduler import log
from ci_scheduler.common.errors import IgnoreMessage
from ci_scheduler.github import RepositorySlug
from ci_scheduler.push_message import from_pubsub_envelope
from ci_scheduler.scheduler import events


class MessageParser(object):
    """Parses the messages received from GitHub and from the executor

    A message is a mapping with the ``topic`` it was received on, such as
    ``github.check_suite`` or ``buildbucket.build``, an optional ``msg_id``
    and the ``body`` as sent by the service.

    :param topic_categories: list of known services the scheduler handles the
        messages of. For example ``["github", "buildbucket"]``.
    :type topic_categories: list[str]
    """

    def __init__(self, topic_categories=("github", "buildbucket")):
        self.topic_categories = topic_categories

    def parse(self, msg):
        """
        Parse a received message and convert it to a consistent format

        :param dict msg: the received message.
        :return: a mapping representing the corresponding event.
            If the topic or the action isn't recognized, None is returned.
        :rtype: dict or None
        """
        topic = msg.get("topic", "")
        categories_re = "|".join(map(re.escape, self.topic_categories))
        regex_pattern = re.compile(
            r"^(?P<category>" + categories_re + r")"
            r"\.(?P<object>check_suite|check_run|build)$"
        )
        regex_results = re.search(regex_pattern, topic)
        if not regex_results:
            log.debug("Skipping message with the unknown topic %r", topic)
            return None

        category = regex_results.group("category")
        object = regex_results.group("object")
        msg_id = msg.get("msg_id")
        body = msg.get("body")
        if not body:
            log.debug("Skipping message without any content with the topic %r", topic)
            return None

        if category == "github" and object == "check_suite":
            return self._parse_check_suite(msg_id, body)
        if category == "github" and object == "check_run":
            return self._parse_check_run(msg_id, body)
        if category == "buildbucket" and object == "build":
            try:
                push_message = from_pubsub_envelope(body)
            except IgnoreMessage as e:
                log.warning("Skipping build notification %r: %s", msg_id, e)
                return None
            return {
                "msg_id": msg_id,
                "event": events.BUILD_STATUS_CHANGE,
                "push_message": push_message,
            }
        return None

    @staticmethod
    def _pull_request(pull_requests):
        # A check suite is associated with the pull requests of its head sha,
        # the first one is the one the builds report to.
        if not pull_requests:
            return None, None
        pull_request = pull_requests[0]
        return pull_request["number"], pull_request.get("base", {}).get("ref")

    def _parse_check_suite(self, msg_id, body):
        action = body.get("action")
        if action not in ("requested", "rerequested"):
            log.debug("Ignoring check_suite action %r", action)
            return None
        check_suite = body["check_suite"]
        pr_number, base_branch = self._pull_request(check_suite.get("pull_requests"))
        return {
            "msg_id": msg_id,
            "event": events.GITHUB_CHECK_SUITE,
            "action": action,
            "slug": RepositorySlug.from_full_name(body["repository"]["full_name"]),
            "check_suite_id": check_suite["id"],
            "head_sha": check_suite["head_sha"],
            "head_branch": check_suite.get("head_branch"),
            "pr_number": pr_number,
            "base_branch": base_branch,
        }

    def _parse_check_run(self, msg_id, body):
        action = body.get("action")
        if action != "rerequested":
            log.debug("Ignoring check_run action %r", action)
            return None
        check_run = body["check_run"]
        check_suite = check_run.get("check_suite", {})
        pr_number, base_branch = self._pull_request(
            check_run.get("pull_requests") or check_suite.get("pull_requests"))
        return {
            "msg_id": msg_id,
            "event": events.GITHUB_CHECK_RUN,
            "action": action,
            "slug": RepositorySlug.from_full_name(body["repository"]["full_name"]),
            "check_run_id": check_run["id"],
            "name": check_run["name"],
            "check_suite_id": check_suite.get("id"),
            "head_sha": check_run["head_sha"],
            "pr_number": pr_number,
            "base_branch": base_branch,
        }
