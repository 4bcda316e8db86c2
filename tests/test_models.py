# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import pytest

from ci_scheduler.models import Commit, Task

from tests import make_commit


class TestTask:
    def test_claim(self, db_session):
        commit = make_commit(db_session, task_statuses={"Linux analyze": Task.STATUS_NEW})
        task = commit.tasks[0]
        assert task.claim(db_session) is True
        assert task.status == Task.STATUS_IN_PROGRESS

        db_session.expire_all()
        assert db_session.get(Task, task.id).status == Task.STATUS_IN_PROGRESS

    def test_claim_only_once(self, db_session, session_factory):
        commit = make_commit(db_session, task_statuses={"Linux analyze": Task.STATUS_NEW})
        task = commit.tasks[0]

        other_session = session_factory()
        try:
            other_task = other_session.get(Task, task.id)
            assert other_task.claim(other_session) is True
        finally:
            other_session.close()

        assert task.claim(db_session) is False
        assert task.status == Task.STATUS_IN_PROGRESS

    def test_claim_finished_task(self, db_session):
        commit = make_commit(db_session, task_statuses={"Linux analyze": Task.STATUS_SUCCEEDED})
        assert commit.tasks[0].claim(db_session) is False

    def test_release(self, db_session):
        commit = make_commit(db_session, task_statuses={"Linux analyze": Task.STATUS_NEW})
        task = commit.tasks[0]
        task.claim(db_session)
        assert task.release(db_session) is True
        assert task.status == Task.STATUS_NEW

    def test_release_after_build_started(self, db_session, session_factory):
        commit = make_commit(db_session, task_statuses={"Linux analyze": Task.STATUS_NEW})
        task = commit.tasks[0]
        task.claim(db_session)

        # The build started and was recorded by somebody else meanwhile.
        other_session = session_factory()
        try:
            other_session.get(Task, task.id).record_attempt(3)
            other_session.commit()
        finally:
            other_session.close()

        assert task.release(db_session) is False
        assert task.status == Task.STATUS_IN_PROGRESS
        assert task.attempts == 1

    def test_record_attempt_and_finish(self, db_session):
        commit = make_commit(db_session, task_statuses={"Linux analyze": Task.STATUS_NEW})
        task = commit.tasks[0]
        task.record_attempt(10)
        task.finish(succeeded=False)
        assert task.status == Task.STATUS_FAILED
        assert task.is_flaky is False

        task.record_attempt(11)
        assert task.status == Task.STATUS_IN_PROGRESS
        assert task.end_timestamp is None
        task.finish(succeeded=True)
        assert task.status == Task.STATUS_SUCCEEDED
        assert task.is_flaky is True
        assert task.build_numbers == [10, 11]
        assert task.latest_build_number == 11
        assert task.attempts == 2

    def test_unknown_status(self, db_session):
        commit = make_commit(db_session, task_statuses={"Linux analyze": Task.STATUS_NEW})
        with pytest.raises(ValueError):
            commit.tasks[0].status = "Succeeded"


class TestQueryRecent:
    def test_newest_commits_first(self, db_session):
        make_commit(db_session, sha="old", age=3, task_statuses={"A": Task.STATUS_NEW})
        make_commit(db_session, sha="new", age=1)
        make_commit(db_session, sha="mid", age=2, task_statuses={"A": Task.STATUS_NEW})
        commits = Commit.query_recent(db_session, "flutter/flutter", "main", limit=5)
        assert [commit.sha for commit in commits] == ["new", "mid", "old"]

    def test_limit(self, db_session):
        for age in range(4):
            make_commit(db_session, sha="sha%d" % age, age=age,
                        task_statuses={"A": Task.STATUS_NEW, "B": Task.STATUS_NEW})
        commits = Commit.query_recent(db_session, "flutter/flutter", "main", limit=2)
        assert [(c.sha, [task.name for task in c.tasks]) for c in commits] == [
            ("sha0", ["A", "B"]), ("sha1", ["A", "B"])]

    def test_branch_and_repository(self, db_session):
        make_commit(db_session, sha="a", task_statuses={"A": Task.STATUS_NEW})
        make_commit(db_session, sha="b", branch="flutter-3.7-candidate.1",
                    task_statuses={"A": Task.STATUS_NEW})
        make_commit(db_session, sha="c", repository="flutter/engine",
                    task_statuses={"A": Task.STATUS_NEW})
        commits = Commit.query_recent(db_session, "flutter/flutter", "main")
        assert [commit.sha for commit in commits] == ["a"]


class TestCommit:
    def test_commit_helpers(self, db_session):
        commit = make_commit(db_session)
        assert commit.owner == "flutter"
        assert commit.repository_name == "flutter"
        assert Commit.get_by_sha(db_session, "flutter/flutter", "abc123") is commit
        assert Commit.get_by_sha(db_session, "flutter/engine", "abc123") is None
