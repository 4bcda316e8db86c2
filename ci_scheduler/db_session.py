# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Database session handling."""

import sqlalchemy
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ci_scheduler.models import Base


def make_engine(conf):
    """
    Create the database engine described by ``conf.db``.

    If SQLite in-memory database is used, the driver options are set so
    multiple threads can share the same database. This is used *only*
    during tests and local runs.
    """
    options = {}
    url = sqlalchemy.engine.make_url(conf.db)
    if url.drivername == "sqlite" and url.database in (None, "", ":memory:"):
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}
    return sqlalchemy.create_engine(conf.db, **options)


def make_session_factory(conf, engine=None):
    """
    :param conf: instance of ci_scheduler.common.config.Config
    :param engine: optional engine, created from the configuration if missing
    :return: a sessionmaker producing sessions bound to the engine
    """
    if engine is None:
        engine = make_engine(conf)
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_tables(engine):
    """ Creates our tables in the database. """
    Base.metadata.create_all(engine)
