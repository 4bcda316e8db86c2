# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Turns landed commits and pull request events into build requests. """

from ci_scheduler import log
from ci_scheduler.build_service import DEFAULT_PRIORITY, PendingBuild
from ci_scheduler.ci_yaml import get_postsubmit_targets
from ci_scheduler.common.errors import CorrelationError
from ci_scheduler.github import RepositorySlug
from ci_scheduler.models import Task
from ci_scheduler.push_message import TaskCorrelation, decode_user_data


class Scheduler(object):
    """
    :param conf: instance of ci_scheduler.common.config.Config
    :param db_session: SQLAlchemy session, used from the calling thread only.
    :param build_service: BuildService.
    :param checks_service: GithubChecksService.
    :param ci_yaml_loader: CiYamlLoader.
    """

    def __init__(self, conf, db_session, build_service, checks_service, ci_yaml_loader):
        self.conf = conf
        self.db_session = db_session
        self.build_service = build_service
        self.checks_service = checks_service
        self.ci_yaml_loader = ci_yaml_loader

    def process_check_suite_event(self, event):
        return self.checks_service.handle_check_suite(event)

    def process_check_run_event(self, event):
        return self.checks_service.handle_check_run(event)

    def _load_postsubmit_targets(self, commit):
        slug = RepositorySlug.from_full_name(commit.repository)
        config = self.ci_yaml_loader.load(slug, commit.sha)
        return config, get_postsubmit_targets(config, commit.branch)

    def _ensure_tasks(self, commit, targets):
        tasks = dict((task.name, task) for task in commit.tasks)
        created = False
        for target in targets:
            if target.name not in tasks:
                tasks[target.name] = Task.create(
                    self.db_session, commit, target.name, builder_name=target.builder)
                created = True
        if created:
            self.db_session.commit()
        return tasks

    def _claim_and_schedule(self, commit, ready):
        """
        Claims the tasks of ``ready`` and schedules their builds.

        :param list ready: (Target, Task) pairs.
        :return: the PendingBuilds which were not scheduled, their tasks are
            released back to new.
        """
        pending = []
        for target, task in ready:
            if task.claim(self.db_session):
                pending.append(PendingBuild(target, task, DEFAULT_PRIORITY))
            else:
                log.info("Not scheduling %r, it is %s", task, task.status)
        if not pending:
            return []

        try:
            failed = self.build_service.schedule_postsubmit_builds(commit, pending)
        except Exception:
            for pending_build in pending:
                pending_build.task.release(self.db_session)
            raise
        for pending_build in failed:
            log.warning("Failed to schedule %r of %r", pending_build.task, commit)
            pending_build.task.release(self.db_session)
        return failed

    def trigger_postsubmit_targets(self, commit):
        """
        Creates the tasks of a landed commit and schedules the builds of the
        targets without dependencies.

        :param commit: the landed Commit.
        :return: the PendingBuilds which failed to be scheduled.
        :rtype: list[PendingBuild]
        """
        config, targets = self._load_postsubmit_targets(commit)
        tasks = self._ensure_tasks(commit, targets)
        ready = [
            (target, tasks[target.name]) for target in targets
            if target.scheduler.triggers_builds and not target.dependencies
        ]
        log.info("Scheduling %d of %d postsubmit targets of %r",
                 len(ready), len(targets), commit)
        return self._claim_and_schedule(commit, ready)

    def trigger_ready_dependents(self, commit, target_name):
        """
        Schedules the targets depending on ``target_name`` whose dependencies
        all succeeded at ``commit``.

        :return: the PendingBuilds which failed to be scheduled.
        """
        config, targets = self._load_postsubmit_targets(commit)
        postsubmit_names = set(target.name for target in targets)
        dependents = [
            target for target in config.dependents_of(target_name)
            if target.name in postsubmit_names and target.scheduler.triggers_builds
        ]
        if not dependents:
            return []

        tasks = self._ensure_tasks(commit, dependents)
        succeeded = set(
            task.name for task in commit.tasks if task.status == Task.STATUS_SUCCEEDED)
        ready = [
            (target, tasks[target.name]) for target in dependents
            if all(dependency in succeeded for dependency in target.dependencies)
        ]
        return self._claim_and_schedule(commit, ready)

    def update_task_status(self, push_message):
        """
        Updates a postsubmit task from the executor's build notification.

        :param BuildPushMessage push_message: the build notification.
        :return: True if the task was updated.
        """
        if not push_message.user_data:
            return False
        try:
            correlation = decode_user_data(push_message.user_data)
        except CorrelationError as e:
            log.warning("Dropping notification of %r: %s", push_message.build, e)
            return False
        if not isinstance(correlation, TaskCorrelation):
            return False

        task = self.db_session.get(Task, correlation.task_id)
        if task is None:
            log.warning("Notification of %r for unknown task %d",
                        push_message.build, correlation.task_id)
            return False
        if correlation.commit_sha and task.commit.sha != correlation.commit_sha:
            log.warning("Notification of %r for %r names commit %s",
                        push_message.build, task, correlation.commit_sha)
            return False

        build = push_message.build
        number = build.number
        latest = task.latest_build_number
        if number is not None and number not in task.build_numbers:
            if latest is not None and number < latest:
                log.info("Ignoring notification of old build %d of %r", number, task)
                return False
            task.record_attempt(number)
        elif number is not None and number != latest:
            log.info("Ignoring notification of old build %d of %r", number, task)
            return False
        elif task.is_finished and not build.is_completed:
            log.info("Ignoring stale %s notification of finished %r", build.status, task)
            return False

        if not build.is_completed:
            if task.status == Task.STATUS_NEW:
                task.status = Task.STATUS_IN_PROGRESS
            self.db_session.commit()
            return True

        if task.is_finished:
            log.debug("%r already finished", task)
            return False

        succeeded = build.result == "success"
        task.finish(succeeded)
        self.db_session.commit()
        log.info("%r finished as %s", task, task.status)
        if succeeded:
            self.trigger_ready_dependents(task.commit, task.name)
        return True
