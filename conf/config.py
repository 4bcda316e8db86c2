# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
from os import environ, path

# FIXME: workaround for this moment till confdir, dbdir (installdir etc.) are
# declared properly somewhere/somehow
confdir = path.abspath(path.dirname(__file__))
# use parent dir as dbdir else fallback to current dir
dbdir = path.abspath(path.join(confdir, "..")) if confdir.endswith("conf") else confdir


class BaseConfiguration(object):
    DB = "sqlite:///{0}".format(path.join(dbdir, "ci_scheduler.db"))

    GITHUB_API_URL = "https://api.github.com"
    GITHUB_TOKEN = environ.get("GITHUB_TOKEN", "")
    SUPPORTED_REPOS = ["flutter/flutter"]
    DEFAULT_BRANCH = "main"

    BUILDBUCKET_URL = "https://cr-buildbucket.appspot.com/prpc/buildbucket.v2.Builds"
    BUILDBUCKET_TOKEN = environ.get("BUILDBUCKET_TOKEN", "")
    LUCI_PROJECT = "flutter"
    PUBSUB_TOPIC = "projects/flutter-dashboard/topics/luci-builds"

    BACKFILLER_TARGET_LIMIT = 50
    BACKFILLER_COMMIT_LIMIT = 5

    LOG_LEVEL = "info"


class TestConfiguration(BaseConfiguration):
    LOG_LEVEL = "debug"
    DB = environ.get("DATABASE_URI", "sqlite://")

    GITHUB_API_URL = "https://api.github.example.local"
    BUILDBUCKET_URL = "https://buildbucket.example.local/prpc/buildbucket.v2.Builds"

    BACKFILLER_TARGET_LIMIT = 5
    BACKFILLER_MAX_WORKERS = 2

    # Global network-related values, in seconds
    NET_TIMEOUT = 3
    NET_RETRY_INTERVAL = 1
    SCHEDULER_RETRY_DELAY = 0
    SCHEDULER_RETRY_BACKOFF = 1


class ProdConfiguration(BaseConfiguration):
    LOG_BACKEND = "console"


class DevConfiguration(BaseConfiguration):
    LOG_LEVEL = "debug"
    SUPPORTED_REPOS = ["flutter/cocoon"]
