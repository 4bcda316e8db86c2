# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Generic executor client and the executor's view of a build."""

from abc import ABCMeta, abstractmethod
import collections

from ci_scheduler import log
from ci_scheduler.common.errors import ProgrammingError, ValidationError

BUILD_STATUSES = ("scheduled", "started", "completed")
BUILD_RESULTS = ("success", "failure", "canceled")

# Executor statuses of both API versions mapped to (status, result).
WIRE_STATUSES = {
    "SCHEDULED": ("scheduled", None),
    "STARTED": ("started", None),
    "SUCCESS": ("completed", "success"),
    "FAILURE": ("completed", "failure"),
    # An infrastructure failure is still a failed attempt.
    "INFRA_FAILURE": ("completed", "failure"),
    "CANCELED": ("completed", "canceled"),
}

WIRE_RESULTS = {
    "SUCCESS": "success",
    "FAILURE": "failure",
    "CANCELED": "canceled",
}

BUILD_URL_TEMPLATE = "https://ci.chromium.org/b/{0}"

# Per request outcome of GenericBuildClient.batch. Exactly one of build and
# error is set.
BatchResult = collections.namedtuple("BatchResult", ["build", "error"])


def normalize_status(status, result=None):
    """
    Maps the executor's status, and result of finished builds, to the
    domain's (status, result) pair.

    :raises ProgrammingError: on a value the executor is not known to report.
    """
    if status == "COMPLETED":
        # Older API, the outcome is carried by a separate result field.
        if result not in WIRE_RESULTS:
            raise ProgrammingError("Unknown result %r of a completed build" % (result,))
        return "completed", WIRE_RESULTS[result]
    if status not in WIRE_STATUSES:
        raise ProgrammingError("Unknown build status %r" % (status,))
    return WIRE_STATUSES[status]


def _parse_tags(raw_tags):
    tags = []
    for tag in raw_tags or []:
        if isinstance(tag, dict):
            tags.append((tag.get("key"), tag.get("value")))
        else:
            key, _, value = str(tag).partition(":")
            tags.append((key, value))
    return tags


class Build(object):
    """
    One attempt of a builder on the executor.

    Builds are fetched on demand with a field mask, so any attribute but the
    id may be None.
    """

    def __init__(self, id, builder=None, status=None, result=None, summary_markdown=None,
                 url=None, number=None, tags=None):
        self.id = id
        self.builder = builder or {}
        self.status = status
        self.result = result
        self.summary_markdown = summary_markdown
        self.url = url
        self.number = number
        self.tags = tags or []

    def __repr__(self):
        return "<Build %r of %s, status %s, result %s>" % (
            self.id, self.builder_name, self.status, self.result)

    @property
    def builder_name(self):
        return self.builder.get("builder")

    @property
    def is_completed(self):
        return self.status == "completed"

    def get_tag(self, key):
        for tag_key, value in self.tags:
            if tag_key == key:
                return value
        return None

    @classmethod
    def from_json(cls, data):
        """
        Creates the Build from the executor's JSON representation.

        :raises ValidationError: if the build has no id.
        :raises ProgrammingError: if the status or result is unknown.
        """
        if not data or "id" not in data:
            raise ValidationError("Build without an id: %r" % (data,))
        build_id = int(data["id"])

        status = result = None
        if data.get("status"):
            status, result = normalize_status(data["status"], data.get("result"))

        builder = data.get("builder")
        if builder is None and data.get("parameters", {}).get("builder_name"):
            builder = {
                "bucket": data.get("bucket"),
                "builder": data["parameters"]["builder_name"],
            }

        number = data.get("number")
        if number is not None:
            number = int(number)

        return cls(
            id=build_id,
            builder=builder,
            status=status,
            result=result,
            summary_markdown=data.get("summaryMarkdown") or data.get("summary_markdown"),
            url=data.get("url") or BUILD_URL_TEMPLATE.format(build_id),
            number=number,
            tags=_parse_tags(data.get("tags")),
        )


class GenericBuildClient(metaclass=ABCMeta):
    """
    External API of the executor running the builds.

    Example usage:
        client = GenericBuildClient.create(conf)
        build = client.schedule_build({
            "builder": {"project": "flutter", "bucket": "prod", "builder": "Linux A"},
            "priority": 30,
        })
        build = client.get_build(build.id, fields="id,status")

    Failures to reach the executor, and 5xx responses, raise BackendError.
    Requests the executor rejects raise ExecutorError.
    """

    backend = "generic"
    backends = {}

    @classmethod
    def register_backend_class(cls, backend_class):
        GenericBuildClient.backends[backend_class.backend] = backend_class

    @classmethod
    def create(cls, conf, **extra):
        """
        :param conf: instance of ci_scheduler.common.config.Config
        :return: the client of the executor named by ``conf.build_backend``
        """
        if conf.build_backend not in GenericBuildClient.backends:
            raise ValueError("Build backend %r not recognized (%r)" % (
                conf.build_backend, sorted(GenericBuildClient.backends)))
        log.debug("Creating the %s build client", conf.build_backend)
        return GenericBuildClient.backends[conf.build_backend](conf, **extra)

    @abstractmethod
    def schedule_build(self, request):
        """
        :param dict request: the schedule build request.
        :return: the scheduled Build.
        """
        raise NotImplementedError()

    @abstractmethod
    def batch(self, requests):
        """
        Sends several schedule build requests in a single call.

        :param list requests: schedule build requests.
        :return: one BatchResult per request, in the order of ``requests``.
        """
        raise NotImplementedError()

    @abstractmethod
    def get_build(self, build_id, fields=None):
        """
        :param int build_id: id of the build.
        :param str fields: comma separated field mask, e.g. ``id,builder,summaryMarkdown``.
        :rtype: Build
        """
        raise NotImplementedError()

    @abstractmethod
    def search_builds(self, predicate, fields=None):
        """
        :param dict predicate: the builds to search for, e.g. by builder and tags.
        :param str fields: comma separated field mask of the builds.
        :return: all the matching builds.
        :rtype: list[Build]
        """
        raise NotImplementedError()
