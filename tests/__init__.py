# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import base64
from datetime import datetime, timedelta, timezone
import json

from mock import MagicMock

from ci_scheduler.builder.base import BatchResult, Build
from ci_scheduler.ci_yaml import SchedulerConfig
from ci_scheduler.github import CheckRun, RepositorySlug
from ci_scheduler.models import Commit, Task

SLUG = RepositorySlug("flutter", "flutter")

CI_YAML = """
enabled_branches:
  - main
  - flutter-\\d+\\.\\d+-candidate\\.\\d+

platform_properties:
  linux:
    properties:
      os: Linux
      device_type: none
  mac:
    properties:
      os: Mac-12

targets:
  - name: Linux analyze
    recipe: flutter/flutter
    timeout: 60
    properties:
      validation: analyze

  - name: Linux framework_tests
    recipe: flutter/flutter
    dependencies:
      - Linux analyze
    runIf:
      - packages/flutter/**

  - name: Mac build_tests
    recipe: flutter/flutter
    scheduler: luci
    presubmit: false

  - name: Linux docs_publish
    recipe: flutter/docs
    bringup: true
    enabled_branches:
      - main

  - name: Linux internal_perf
    scheduler: google_internal
    presubmit: false
"""


def load_config(text=CI_YAML):
    return SchedulerConfig.from_yaml(text)


def make_loader(text=CI_YAML):
    loader = MagicMock()
    loader.load.return_value = load_config(text)
    return loader


def make_commit(db_session, sha="abc123", branch="main", repository="flutter/flutter",
                age=0, task_statuses=None):
    """
    Creates a commit and its tasks.

    :param int age: how many hours ago the commit landed.
    :param dict task_statuses: status of the tasks of the commit, by task name.
    """
    commit = Commit(
        sha=sha,
        branch=branch,
        repository=repository,
        author="dash",
        message="Commit %s" % sha,
        timestamp=datetime(2023, 1, 1, tzinfo=timezone.utc) - timedelta(hours=age),
    )
    db_session.add(commit)
    for name, status in sorted((task_statuses or {}).items()):
        task = Task.create(db_session, commit, name)
        task.status = status
        if status != Task.STATUS_NEW:
            task.attempts = 1
            task.build_number_list = "1"
    db_session.commit()
    return commit


def make_build(id=8781, builder="Linux analyze", status="completed", result="failure",
               number=12, tags=None, url=None, summary_markdown=None):
    return Build(
        id=id,
        builder={"project": "flutter", "bucket": "try", "builder": builder},
        status=status,
        result=result,
        number=number,
        tags=tags or [],
        url=url or "https://ci.chromium.org/b/%d" % id,
        summary_markdown=summary_markdown,
    )


def make_check_run(id=1, name="Linux analyze", status="queued", conclusion=None,
                   details_url=None):
    return CheckRun(id=id, name=name, head_sha="abc123", status=status,
                    conclusion=conclusion, details_url=details_url, check_suite_id=7)


def encode_json(data):
    return base64.b64encode(json.dumps(data).encode("utf-8")).decode("ascii")


def check_run_user_data(check_run_id=1, owner="flutter", name="flutter"):
    return encode_json({
        "check_run_id": check_run_id,
        "repo_owner": owner,
        "repo_name": name,
        "commit_sha": "abc123",
        "builder_name": "Linux analyze",
    })


def task_user_data(task_id, commit_sha="abc123"):
    return encode_json({
        "task_id": task_id,
        "commit_sha": commit_sha,
        "builder_name": "Linux analyze",
    })


def batch_success(requests):
    """ side_effect of a build client batch call scheduling everything """
    return [
        BatchResult(make_build(id=1000 + i, status="scheduled", result=None), None)
        for i, _ in enumerate(requests)
    ]


def pubsub_envelope(build, user_data=None, message_id="1"):
    data = {"build": build}
    if user_data is not None:
        data["user_data"] = user_data
    return {
        "message": {
            "data": encode_json(data),
            "messageId": message_id,
        },
        "subscription": "projects/flutter-dashboard/subscriptions/luci-builds",
    }
