# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import pytest

from ci_scheduler.common.config import init_config
from ci_scheduler.db_session import create_tables, make_engine, make_session_factory
from ci_scheduler.models import Base


@pytest.fixture()
def conf(monkeypatch):
    monkeypatch.setenv("CI_SCHEDULER_CONFIG_SECTION", "TestConfiguration")
    return init_config()


@pytest.fixture()
def engine(conf):
    engine = make_engine(conf)
    create_tables(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session_factory(conf, engine):
    return make_session_factory(conf, engine)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
