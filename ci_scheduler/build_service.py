# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""
Issues, re-issues and looks up the builds of targets on the executor.

Presubmit builds run in the try bucket and report to a GitHub check run,
postsubmit builds run in the prod bucket and report to a Task. Both carry
a correlation payload in their notification user data, see
ci_scheduler.push_message.
"""

import collections

from ci_scheduler import log
from ci_scheduler.ci_yaml import get_presubmit_targets
from ci_scheduler.common.errors import BackendError, BuildScheduleError, ExecutorError
from ci_scheduler.github import RepositorySlug
from ci_scheduler.push_message import encode_user_data

# Higher priorities are served first by the executor.
DEFAULT_PRIORITY = 30
BACKFILL_PRIORITY = 35
RERUN_PRIORITY = 40

USER_AGENT = "ci-scheduler"

PendingBuild = collections.namedtuple("PendingBuild", ["target", "task", "priority"])


def _tag(key, value):
    return {"key": key, "value": str(value)}


class BuildService(object):
    """
    :param conf: instance of ci_scheduler.common.config.Config
    :param build_client: GenericBuildClient of the executor.
    :param github: GithubClient.
    :param ci_yaml_loader: CiYamlLoader loading the targets of a revision.
    """

    def __init__(self, conf, build_client, github, ci_yaml_loader):
        self.conf = conf
        self.build_client = build_client
        self.github = github
        self.ci_yaml_loader = ci_yaml_loader

    def _builder(self, bucket, target):
        return {"project": self.conf.luci_project, "bucket": bucket, "builder": target.builder}

    def _notify(self, user_data):
        return {"pubsubTopic": self.conf.pubsub_topic, "userData": encode_user_data(user_data)}

    def _try_build_request(self, slug, commit_sha, pr_number, target, check_run, priority,
                           trigger_event=None):
        tags = [
            _tag("buildset", "sha/git/%s" % commit_sha),
            _tag("repository", slug.full_name),
            _tag("target", target.name),
            _tag("user_agent", USER_AGENT),
        ]
        properties = target.get_properties()
        properties["git_url"] = "https://github.com/%s" % slug.full_name
        if pr_number is not None:
            tags.insert(0, _tag("buildset", "pr/git/%d" % pr_number))
            tags.append(_tag("github_link", "https://github.com/%s/pull/%d" % (
                slug.full_name, pr_number)))
            properties["git_ref"] = "refs/pull/%d/head" % pr_number
        if trigger_event:
            tags.append(_tag("trigger_event", trigger_event))
        tags.extend(_tag(key, value) for key, value in target.tags)

        user_data = {
            "check_run_id": check_run.id,
            "repo_owner": slug.owner,
            "repo_name": slug.name,
            "commit_sha": commit_sha,
            "builder_name": target.builder,
        }
        return {
            "builder": self._builder(self.conf.try_bucket, target),
            "priority": priority,
            "properties": properties,
            "tags": tags,
            "executionTimeout": "%ds" % (target.timeout * 60),
            "notify": self._notify(user_data),
        }

    def _postsubmit_build_request(self, commit, slug, pending):
        target, task = pending.target, pending.task
        properties = target.get_properties()
        properties.update({
            "git_url": "https://github.com/%s" % slug.full_name,
            "git_ref": commit.sha,
            "git_branch": commit.branch,
        })
        tags = [
            _tag("buildset", "commit/git/%s" % commit.sha),
            _tag("repository", slug.full_name),
            _tag("target", target.name),
            _tag("user_agent", USER_AGENT),
        ]
        tags.extend(_tag(key, value) for key, value in target.tags)
        user_data = {
            "task_id": task.id,
            "commit_sha": commit.sha,
            "builder_name": target.builder,
        }
        return {
            "builder": self._builder(self.conf.prod_bucket, target),
            "priority": pending.priority,
            "properties": properties,
            "tags": tags,
            "executionTimeout": "%ds" % (target.timeout * 60),
            "notify": self._notify(user_data),
        }

    def _fail_check_runs(self, slug, check_runs, summary):
        for check_run in check_runs:
            self.github.update_check_run(
                slug,
                check_run,
                status="completed",
                conclusion="failure",
                output={"title": "Build was not scheduled", "summary": summary},
            )

    def schedule_try_builds(self, pr_number, commit_sha, slug, branch, trigger_event=None):
        """
        Schedules the presubmit builds of a pull request.

        One check run is created per target, and one build is scheduled per
        check run. Check runs whose build could not be scheduled are
        completed as failures.

        :param int pr_number: number of the pull request.
        :param str commit_sha: head commit of the pull request.
        :param RepositorySlug slug: repository of the pull request.
        :param str branch: base branch of the pull request.
        :param str trigger_event: name of the event triggering the builds.
        :return: the scheduled builds.
        :rtype: list[Build]
        :raises BuildScheduleError: if some of the builds were not scheduled.
        """
        config = self.ci_yaml_loader.load(slug, commit_sha)
        changed_files = self.github.list_pull_request_files(slug, pr_number)
        targets = [
            target for target in get_presubmit_targets(config, branch, changed_files)
            if target.scheduler.triggers_builds
        ]
        if not targets:
            log.info("No presubmit targets for %s#%d at %s", slug, pr_number, commit_sha)
            return []

        check_runs = []
        requests = []
        try:
            for target in targets:
                check_run = self.github.create_check_run(slug, target.name, commit_sha)
                check_runs.append(check_run)
                requests.append(self._try_build_request(
                    slug, commit_sha, pr_number, target, check_run, DEFAULT_PRIORITY,
                    trigger_event))

            log.info("Scheduling %d try builds for %s#%d at %s",
                     len(requests), slug, pr_number, commit_sha)
            results = self.build_client.batch(requests)
        except (BackendError, ExecutorError) as e:
            log.error("Failed to schedule try builds of %s#%d: %s", slug, pr_number, e)
            self._fail_check_runs(slug, check_runs, str(e))
            raise

        builds = []
        failed = []
        for check_run, result in zip(check_runs, results):
            if result.error is not None:
                failed.append(check_run.name)
                self._fail_check_runs(slug, [check_run], result.error)
            else:
                builds.append(result.build)

        if failed:
            raise BuildScheduleError(
                "Failed to schedule try builds of %s#%d: %s" % (
                    slug, pr_number, ", ".join(failed)),
                failed=failed,
            )
        return builds

    def schedule_postsubmit_builds(self, commit, to_be_scheduled):
        """
        Schedules the postsubmit builds of a commit.

        :param commit: the Commit the tasks belong to.
        :param list to_be_scheduled: PendingBuild of each build to schedule.
        :return: the PendingBuilds which were not scheduled. If the executor
            could not be reached at all, every PendingBuild is returned.
        :rtype: list[PendingBuild]
        :raises ExecutorError: if the executor rejected the whole request.
        """
        if not to_be_scheduled:
            return []
        slug = RepositorySlug.from_full_name(commit.repository)
        requests = [
            self._postsubmit_build_request(commit, slug, pending)
            for pending in to_be_scheduled
        ]
        try:
            results = self.build_client.batch(requests)
        except BackendError as e:
            log.warning("Failed to schedule %d postsubmit builds of %r: %s",
                        len(requests), commit, e)
            return list(to_be_scheduled)

        failed = []
        for pending, result in zip(to_be_scheduled, results):
            if result.error is not None:
                failed.append(pending)
            else:
                log.info("Scheduled %r for %r at priority %d",
                         result.build, pending.task, pending.priority)
        return failed

    def _reschedule(self, slug, commit_sha, pr_number, check_run, trigger_event):
        config = self.ci_yaml_loader.load(slug, commit_sha)
        target = config.get_target(check_run.name)
        if target is None:
            log.warning("%r has no target in the configuration of %s@%s",
                        check_run, slug, commit_sha)
            return None
        if not target.scheduler.owns_retries:
            log.info("Not rescheduling %r, its retries are owned by %s",
                     target, target.scheduler.name)
            return None

        self.github.update_check_run(slug, check_run, status="queued")
        request = self._try_build_request(
            slug, commit_sha, pr_number, target, check_run, RERUN_PRIORITY, trigger_event)
        try:
            build = self.build_client.schedule_build(request)
        except (BackendError, ExecutorError) as e:
            log.error("Failed to reschedule %r of %s@%s: %s", check_run, slug, commit_sha, e)
            self._fail_check_runs(slug, [check_run], str(e))
            raise
        log.info("Rescheduled %r as %r", check_run, build)
        return build

    def reschedule_try_build_using_check_suite_event(self, event, check_run):
        """
        Re-issues the build of one check run of a re-requested check suite.

        :param dict event: the parsed check_suite event.
        :param CheckRun check_run: the check run to re-run, keeps its id.
        :return: the scheduled Build, or None if the target is not rescheduled.
        """
        return self._reschedule(
            event["slug"], event["head_sha"], event.get("pr_number"), check_run,
            "check_suite.rerequested")

    def reschedule_using_check_run_event(self, event):
        """
        Re-issues the build of a re-requested check run.

        :param dict event: the parsed check_run event.
        :return: the scheduled Build, or None if the target is not rescheduled.
        """
        check_run = self.github.get_check_run(event["slug"], event["check_run_id"])
        return self._reschedule(
            event["slug"], event["head_sha"], event.get("pr_number"), check_run,
            "check_run.rerequested")

    def failed_builds(self, slug, pr_number, commit_sha):
        """
        Returns the try builds of the pull request at a commit whose latest
        attempt failed or was canceled.

        :rtype: list[Build]
        """
        predicate = {
            "builder": {"project": self.conf.luci_project, "bucket": self.conf.try_bucket},
            "tags": [
                _tag("buildset", "pr/git/%d" % pr_number),
                _tag("buildset", "sha/git/%s" % commit_sha),
                _tag("user_agent", USER_AGENT),
            ],
        }
        builds = self.build_client.search_builds(
            predicate,
            fields="builds.*.id,builds.*.builder,builds.*.number,builds.*.status,builds.*.tags",
        )
        # Builds come newest first, only the latest attempt of a target counts.
        latest = collections.OrderedDict()
        for build in builds:
            name = build.get_tag("target") or build.builder_name
            latest.setdefault(name, build)
        return [
            build for build in latest.values()
            if build.is_completed and build.result in ("failure", "canceled")
        ]

    def get_try_build_by_id(self, build_id, fields=None):
        return self.build_client.get_build(build_id, fields=fields)
