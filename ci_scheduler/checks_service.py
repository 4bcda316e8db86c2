# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Keeps the GitHub check runs of pull requests in sync with their builds. """

from ci_scheduler import log
from ci_scheduler.common.errors import CorrelationError, ProgrammingError
from ci_scheduler.push_message import CheckRunCorrelation, decode_user_data

# Build status -> check run status
CHECK_RUN_STATUSES = {
    "completed": "completed",
    "scheduled": "queued",
    "started": "in_progress",
}

# Build result -> check run conclusion. A canceled build is shown as a
# failure, so that it can be re-run from the pull request.
CHECK_RUN_CONCLUSIONS = {
    "canceled": "failure",
    "failure": "failure",
    "success": "success",
}

EMPTY_SUMMARY = "Empty summaryMarkdown"


def status_for_result(status):
    if status not in CHECK_RUN_STATUSES:
        raise ProgrammingError("Build status %r has no check run status" % (status,))
    return CHECK_RUN_STATUSES[status]


def conclusion_for_result(result):
    if result not in CHECK_RUN_CONCLUSIONS:
        raise ProgrammingError("Build result %r has no check run conclusion" % (result,))
    return CHECK_RUN_CONCLUSIONS[result]


class GithubChecksService(object):
    """
    :param conf: instance of ci_scheduler.common.config.Config
    :param build_service: BuildService scheduling the builds of the check runs.
    :param github: GithubClient.
    """

    def __init__(self, conf, build_service, github):
        self.conf = conf
        self.build_service = build_service
        self.github = github

    def handle_check_suite(self, event):
        """
        Schedules the builds of a requested check suite, or re-runs the failed
        builds of a re-requested one.

        :param dict event: the parsed check_suite event.
        :return: the scheduled builds.
        """
        slug = event["slug"]
        pr_number = event.get("pr_number")
        if pr_number is None:
            log.info("Check suite %s of %s is not associated with a pull request",
                     event.get("check_suite_id"), slug)
            return []

        action = event["action"]
        if action == "requested":
            return self.build_service.schedule_try_builds(
                pr_number=pr_number,
                commit_sha=event["head_sha"],
                slug=slug,
                branch=event["base_branch"],
                trigger_event="check_suite.requested",
            )

        if action == "rerequested":
            failed_builds = self.build_service.failed_builds(slug, pr_number, event["head_sha"])
            check_runs = dict(
                (check_run.name, check_run)
                for check_run in self.github.list_check_runs_for_suite(
                    slug, event["check_suite_id"])
            )
            builds = []
            for failed_build in failed_builds:
                name = failed_build.get_tag("target") or failed_build.builder_name
                check_run = check_runs.get(name)
                if check_run is None:
                    log.warning("No check run %r in check suite %s of %s",
                                name, event["check_suite_id"], slug)
                    continue
                build = self.build_service.reschedule_try_build_using_check_suite_event(
                    event, check_run)
                if build is not None:
                    builds.append(build)
            return builds

        log.debug("Ignoring check_suite action %r", action)
        return []

    def handle_check_run(self, event):
        """
        :param dict event: the parsed check_run event.
        :return: the re-scheduled build, or None.
        """
        if event["action"] == "rerequested":
            return self.build_service.reschedule_using_check_run_event(event)
        log.debug("Ignoring check_run action %r", event["action"])
        return None

    def update_check_status(self, push_message):
        """
        Updates the check run of a build from the executor's notification.

        :param BuildPushMessage push_message: the build notification.
        :return: True if the check run was updated.
        """
        if not push_message.user_data:
            log.debug("Ignoring notification of %r without user data", push_message.build)
            return False
        try:
            correlation = decode_user_data(push_message.user_data)
        except CorrelationError as e:
            log.warning("Dropping notification of %r: %s", push_message.build, e)
            return False
        if not isinstance(correlation, CheckRunCorrelation):
            log.debug("Notification of %r is not about a check run", push_message.build)
            return False

        build = push_message.build
        slug = correlation.slug
        check_run = self.github.get_check_run(slug, correlation.check_run_id)
        status = status_for_result(build.status)

        if check_run.is_completed and status != "completed":
            log.info("Ignoring stale %s notification of %r for completed %r",
                     build.status, build, check_run)
            return False

        details_url = None
        conclusion = None
        output = None
        if status != "completed":
            details_url = build.url
        else:
            conclusion = conclusion_for_result(build.result)
            if conclusion == "failure":
                full_build = self.build_service.get_try_build_by_id(
                    build.id, fields="id,builder,summaryMarkdown")
                output = {
                    "title": "%s failed" % check_run.name,
                    "summary": full_build.summary_markdown or EMPTY_SUMMARY,
                }

        self.github.update_check_run(
            slug,
            check_run,
            status=status,
            conclusion=conclusion,
            details_url=details_url,
            output=output,
        )
        log.info("Updated %r of %s to %s/%s", check_run, slug, status, conclusion)
        return True
