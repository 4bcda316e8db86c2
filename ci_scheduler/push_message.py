# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""
Build notifications pushed by the executor, and the correlation payload
(user data) we send with every build request to recognize them.

A notification correlates either with a check run of a pull request or with
a postsubmit task. Anything else is not ours and is ignored.
"""

import base64
import binascii
import collections
import json

from ci_scheduler.builder.base import Build
from ci_scheduler.common.errors import CorrelationError, IgnoreMessage, ValidationError
from ci_scheduler.github import RepositorySlug

BuildPushMessage = collections.namedtuple("BuildPushMessage", ["build", "user_data"])

CheckRunCorrelation = collections.namedtuple(
    "CheckRunCorrelation", ["check_run_id", "slug", "commit_sha", "builder_name"])

TaskCorrelation = collections.namedtuple(
    "TaskCorrelation", ["task_id", "commit_sha", "builder_name"])


def encode_user_data(data):
    """ Encodes the correlation payload as the executor expects bytes fields. """
    raw = json.dumps(data, sort_keys=True).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def _load_json(raw):
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        return json.loads(raw)
    except ValueError:
        pass
    try:
        return json.loads(base64.b64decode(raw, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise CorrelationError("User data %r is neither JSON nor base64 encoded JSON" % (raw,))


def _require_string(data, key):
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise CorrelationError("User data field %s must be a non-empty string, got %r" % (
            key, value))
    return value


def _require_int(data, key):
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise CorrelationError("User data field %s must be an integer, got %r" % (key, value))
    return value


def decode_user_data(raw):
    """
    Decodes the user data of a build notification.

    :param raw: the user data, JSON or base64 encoded JSON.
    :return: CheckRunCorrelation, TaskCorrelation, or None if the payload
        carries neither a check run nor a task id.
    :raises CorrelationError: if the payload is malformed.
    """
    if not raw:
        return None
    data = _load_json(raw)
    if not isinstance(data, dict):
        raise CorrelationError("User data must be a mapping, got %r" % (data,))

    if "check_run_id" in data:
        return CheckRunCorrelation(
            check_run_id=_require_int(data, "check_run_id"),
            slug=RepositorySlug(
                _require_string(data, "repo_owner"), _require_string(data, "repo_name")),
            commit_sha=data.get("commit_sha"),
            builder_name=data.get("builder_name"),
        )
    if "task_id" in data:
        return TaskCorrelation(
            task_id=_require_int(data, "task_id"),
            commit_sha=data.get("commit_sha"),
            builder_name=data.get("builder_name"),
        )
    return None


def from_pubsub_envelope(envelope):
    """
    Decodes the Pub/Sub push envelope of a build notification.

    The envelope looks like ``{"message": {"data": <base64>, ...}}`` where the
    data is a JSON object with the ``build`` and its ``user_data``.

    :rtype: BuildPushMessage
    :raises IgnoreMessage: if the envelope does not carry a build.
    """
    try:
        data = json.loads(base64.b64decode(envelope["message"]["data"]))
        raw_build = data["build"]
    except (TypeError, KeyError, ValueError, binascii.Error) as e:
        raise IgnoreMessage("Not a build notification: %s" % e)

    try:
        build = Build.from_json(raw_build)
    except ValidationError as e:
        raise IgnoreMessage(str(e))
    user_data = data.get("user_data", data.get("userData"))
    return BuildPushMessage(build, user_data)
