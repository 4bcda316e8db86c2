# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" SQLAlchemy Database models for the commits and tasks of the dashboard """

import collections
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    update,
)
from sqlalchemy.orm import declarative_base, relationship, validates

from ci_scheduler import log


# A task paired with the commit it belongs to.
FullTask = collections.namedtuple("FullTask", ["task", "commit"])


def _utcnow():
    return datetime.now(timezone.utc)


class CISchedulerBase(object):
    def __repr__(self):
        return "<%s id=%r>" % (self.__class__.__name__, getattr(self, "id", None))


Base = declarative_base(cls=CISchedulerBase)


class Commit(Base):
    """ A single revision of a tracked repository. """
    __tablename__ = "commits"
    __table_args__ = (UniqueConstraint("repository", "sha"),)

    id = Column(Integer, primary_key=True)
    sha = Column(String(40), nullable=False)
    # owner/name of the repository, e.g. flutter/flutter
    repository = Column(String, nullable=False)
    branch = Column(String, nullable=False)
    author = Column(String)
    author_avatar_url = Column(String)
    message = Column(Text)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    tasks = relationship("Task", back_populates="commit", order_by="Task.name")

    def __repr__(self):
        return "<Commit %s@%s, branch %s>" % (self.repository, self.sha, self.branch)

    @property
    def owner(self):
        return self.repository.split("/", 1)[0]

    @property
    def repository_name(self):
        return self.repository.split("/", 1)[1]

    @classmethod
    def get_by_sha(cls, session, repository, sha):
        return session.query(cls).filter_by(repository=repository, sha=sha).first()

    @classmethod
    def query_recent(cls, session, repository, branch=None, limit=5):
        """ Returns the most recent commits of a repository, newest first. """
        query = session.query(cls).filter(cls.repository == repository)
        if branch:
            query = query.filter(cls.branch == branch)
        return query.order_by(cls.timestamp.desc(), cls.id.desc()).limit(limit).all()


class Task(Base):
    """ One execution record of a target against a commit. """
    __tablename__ = "tasks"
    __table_args__ = (UniqueConstraint("commit_id", "name"),)

    # Created for the target of a commit and never attempted.
    STATUS_NEW = "new"
    # Claimed for scheduling, or a build is running on the executor.
    STATUS_IN_PROGRESS = "in progress"
    STATUS_SUCCEEDED = "succeeded"
    STATUS_FAILED = "failed"

    STATUSES = (STATUS_NEW, STATUS_IN_PROGRESS, STATUS_SUCCEEDED, STATUS_FAILED)
    FINISHED_STATUSES = (STATUS_SUCCEEDED, STATUS_FAILED)

    id = Column(Integer, primary_key=True)
    commit_id = Column(Integer, ForeignKey("commits.id"), nullable=False)
    name = Column(String, nullable=False)
    builder_name = Column(String)
    status = Column(String, nullable=False, default=STATUS_NEW)
    is_flaky = Column(Boolean, nullable=False, default=False)
    is_test_flaky = Column(Boolean, nullable=False, default=False)
    create_timestamp = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    start_timestamp = Column(DateTime(timezone=True))
    end_timestamp = Column(DateTime(timezone=True))
    # Comma separated executor build numbers, oldest first.
    build_number_list = Column(String)
    attempts = Column(Integer, nullable=False, default=0)

    commit = relationship("Commit", back_populates="tasks")

    def __repr__(self):
        return "<Task %s of commit_id %r, status %r, attempts %r>" % (
            self.name, self.commit_id, self.status, self.attempts)

    @validates("status")
    def validate_status(self, key, status):
        if status not in self.STATUSES:
            raise ValueError("Task status %r is not one of %r" % (status, self.STATUSES))
        return status

    @property
    def build_numbers(self):
        if not self.build_number_list:
            return []
        return [int(number) for number in self.build_number_list.split(",")]

    @property
    def latest_build_number(self):
        numbers = self.build_numbers
        return numbers[-1] if numbers else None

    @property
    def is_finished(self):
        return self.status in self.FINISHED_STATUSES

    @classmethod
    def create(cls, session, commit, name, builder_name=None):
        task = cls(
            commit=commit,
            name=name,
            builder_name=builder_name,
            status=cls.STATUS_NEW,
            attempts=0,
        )
        session.add(task)
        return task

    def claim(self, session):
        """
        Durably moves the task from ``new`` to ``in progress``.

        The update is conditional on the task still being ``new`` in the
        database, so of two concurrent claims only one can succeed.

        :return: True if this call claimed the task
        """
        result = session.execute(
            update(Task)
            .where(Task.id == self.id, Task.status == self.STATUS_NEW)
            .values(status=self.STATUS_IN_PROGRESS)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        if result.rowcount != 1:
            log.info("%r was claimed by somebody else", self)
            session.refresh(self)
            return False
        self.status = self.STATUS_IN_PROGRESS
        return True

    def release(self, session):
        """
        Gives a claimed task back, so that a later pass can schedule it.

        Only a claim which no build attempt was recorded for is released.

        :return: True if the task is ``new`` again
        """
        result = session.execute(
            update(Task)
            .where(
                Task.id == self.id,
                Task.status == self.STATUS_IN_PROGRESS,
                Task.attempts == self.attempts,
            )
            .values(status=self.STATUS_NEW)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        if result.rowcount != 1:
            session.refresh(self)
            return False
        self.status = self.STATUS_NEW
        return True

    def record_attempt(self, build_number):
        """ Notes a new executor build for this task. """
        self.build_number_list = ",".join(
            str(number) for number in self.build_numbers + [build_number])
        self.attempts = (self.attempts or 0) + 1
        self.status = self.STATUS_IN_PROGRESS
        self.start_timestamp = _utcnow()
        self.end_timestamp = None

    def finish(self, succeeded):
        """ Records the terminal result of the latest attempt. """
        if succeeded:
            # A success after a failed attempt of the same commit is a flake.
            if self.attempts > 1:
                self.is_flaky = True
            self.status = self.STATUS_SUCCEEDED
        else:
            self.status = self.STATUS_FAILED
        self.end_timestamp = _utcnow()
