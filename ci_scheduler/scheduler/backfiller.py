# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""
Periodic backfill of the postsubmit history.

Every pass looks at the tasks of the most recent commits of a repository and
schedules, per target, the most recent task which was never attempted. Targets
whose latest finished attempt failed are rerun first, the remaining capacity
is shared randomly between the other targets so that none is starved.
"""

import collections
from concurrent.futures import ThreadPoolExecutor, as_completed
import random

from ci_scheduler import log
from ci_scheduler.build_service import BACKFILL_PRIORITY, RERUN_PRIORITY, PendingBuild
from ci_scheduler.ci_yaml import get_postsubmit_targets
from ci_scheduler.common.errors import BackendError
from ci_scheduler.github import RepositorySlug
from ci_scheduler.models import Commit, FullTask, Task
from ci_scheduler.utils import retry

BackfillCandidate = collections.namedtuple(
    "BackfillCandidate", ["target", "full_task", "priority"])


def backfill_task(full_tasks):
    """
    Picks the task of a target to backfill.

    :param list full_tasks: FullTasks of one target, newest commit first.
    :return: the most recent FullTask never attempted, or None if there is
        none or if a task of the target is in progress.
    """
    if any(full_task.task.status == Task.STATUS_IN_PROGRESS for full_task in full_tasks):
        return None
    for full_task in full_tasks:
        if full_task.task.status == Task.STATUS_NEW:
            return full_task
    return None


def backfill_priority(full_tasks):
    """ RERUN_PRIORITY if the latest finished task of the target failed. """
    for full_task in full_tasks:
        if full_task.task.status == Task.STATUS_FAILED:
            return RERUN_PRIORITY
        if full_task.task.status == Task.STATUS_SUCCEEDED:
            return BACKFILL_PRIORITY
    return BACKFILL_PRIORITY


def get_filtered_backfill(candidates, limit, rng=random):
    """
    Ranks the candidates and keeps at most ``limit`` of them.

    Rerun candidates come first. When they alone exceed the limit, a random
    sample of them is kept, otherwise the remaining capacity is filled with a
    random sample of the other candidates.

    :rtype: list[BackfillCandidate]
    """
    reruns = [candidate for candidate in candidates if candidate.priority == RERUN_PRIORITY]
    backfills = [candidate for candidate in candidates if candidate.priority != RERUN_PRIORITY]
    if len(reruns) >= limit:
        rng.shuffle(reruns)
        return reruns[:limit]
    rng.shuffle(backfills)
    return reruns + backfills[:limit - len(reruns)]


class BatchBackfiller(object):
    """
    :param conf: instance of ci_scheduler.common.config.Config
    :param session_factory: creates the SQLAlchemy session of each pass.
    :param build_service: BuildService.
    :param ci_yaml_loader: CiYamlLoader.
    :param rng: random generator used to shuffle the candidates.
    """

    def __init__(self, conf, session_factory, build_service, ci_yaml_loader, rng=None):
        self.conf = conf
        self.session_factory = session_factory
        self.build_service = build_service
        self.ci_yaml_loader = ci_yaml_loader
        self.rng = rng or random.Random()

    def backfill(self):
        """
        Runs one backfill pass per supported repository. Never raises.

        :return: mapping of the repository to the candidates scheduled in it.
        """
        slugs = [RepositorySlug.from_full_name(repo) for repo in self.conf.supported_repos]
        scheduled = {}
        with ThreadPoolExecutor(max_workers=max(len(slugs), 1)) as executor:
            futures = dict(
                (executor.submit(self.backfill_repository, slug), slug) for slug in slugs)
            for future in as_completed(futures):
                slug = futures[future]
                try:
                    scheduled[slug.full_name] = future.result()
                except Exception:
                    log.exception("Backfill of %s failed", slug)
                    scheduled[slug.full_name] = []
        return scheduled

    def get_candidates(self, slug, newest_commit, full_tasks):
        """
        :param newest_commit: the most recent Commit, whose .ci.yaml applies.
        :param list full_tasks: FullTasks of the recent commits, newest first.
        :rtype: list[BackfillCandidate]
        """
        config = self.ci_yaml_loader.load(slug, newest_commit.sha)
        targets = get_postsubmit_targets(config, self.conf.default_branch)

        tasks_by_name = collections.defaultdict(list)
        for full_task in full_tasks:
            tasks_by_name[full_task.task.name].append(full_task)

        candidates = []
        for target in targets:
            if not target.scheduler.triggers_builds:
                continue
            target_tasks = tasks_by_name.get(target.name, [])
            full_task = backfill_task(target_tasks)
            if full_task is None:
                continue
            if not self._dependencies_succeeded(target, full_task):
                log.debug("Dependencies of %r did not succeed at %r",
                          target, full_task.commit)
                continue
            candidates.append(
                BackfillCandidate(target, full_task, backfill_priority(target_tasks)))
        return candidates

    @staticmethod
    def _dependencies_succeeded(target, full_task):
        succeeded = set(
            task.name for task in full_task.commit.tasks
            if task.status == Task.STATUS_SUCCEEDED)
        return all(dependency in succeeded for dependency in target.dependencies)

    def backfill_repository(self, slug):
        """
        One backfill pass over a repository.

        :param RepositorySlug slug: the repository.
        :return: the candidates whose builds were scheduled.
        """
        session = self.session_factory()
        try:
            commits = Commit.query_recent(
                session, slug.full_name, self.conf.default_branch,
                self.conf.backfiller_commit_limit)
            if not commits:
                log.info("No recent commits of %s to backfill", slug)
                return []

            full_tasks = [
                FullTask(task, commit) for commit in commits for task in commit.tasks]
            candidates = self.get_candidates(slug, commits[0], full_tasks)
            selected = get_filtered_backfill(
                candidates, self.conf.backfiller_target_limit, self.rng)
            log.info("Backfilling %d of %d candidates of %s",
                     len(selected), len(candidates), slug)

            # The claim is committed before any build is requested.
            claimed = [
                candidate for candidate in selected
                if candidate.full_task.task.claim(session)
            ]
            failed = self._schedule_with_retries(claimed)
            for candidate in failed:
                candidate.full_task.task.release(session)
            failed_ids = set(id(candidate) for candidate in failed)
            return [candidate for candidate in claimed if id(candidate) not in failed_ids]
        finally:
            session.close()

    def _schedule(self, candidate):
        pending = PendingBuild(candidate.target, candidate.full_task.task, candidate.priority)
        return self.build_service.schedule_postsubmit_builds(
            candidate.full_task.commit, [pending])

    def _submit(self, candidates):
        """
        Submits the candidates in parallel.

        :return: the candidates which were not scheduled.
        """
        failed = []
        max_workers = min(self.conf.backfiller_max_workers, len(candidates))
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = dict(
                (executor.submit(self._schedule, candidate), candidate)
                for candidate in candidates)
            for future in as_completed(futures):
                candidate = futures[future]
                try:
                    if future.result():
                        failed.append(candidate)
                except Exception:
                    log.exception("Failed to schedule %r", candidate.full_task.task)
                    failed.append(candidate)
        return failed

    def _schedule_with_retries(self, candidates):
        """
        Submits the candidates, resubmitting only the failed ones on retries.

        :return: the candidates still failing once the attempts are exhausted.
        """
        pending = list(candidates)
        if not pending:
            return []

        @retry(
            timeout=None,
            interval=self.conf.scheduler_retry_delay,
            wait_on=BackendError,
            attempts=self.conf.scheduler_retry_attempts,
            backoff=self.conf.scheduler_retry_backoff,
        )
        def submit():
            pending[:] = self._submit(pending)
            if pending:
                raise BackendError("%d builds were not scheduled" % len(pending))

        try:
            submit()
        except BackendError as e:
            log.error("Giving up backfilling %s: %s",
                      ", ".join(candidate.target.name for candidate in pending), e)
        return pending
