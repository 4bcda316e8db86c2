# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Client of the Buildbucket v2 pRPC API."""

import json

import requests

from ci_scheduler import log
from ci_scheduler.builder.base import BatchResult, Build, GenericBuildClient
from ci_scheduler.common.errors import BackendError, ExecutorError
from ci_scheduler.utils.request_utils import get_requests_session

# Prefix the pRPC server puts in front of every JSON response.
XSSI_PREFIX = ")]}'"


class BuildbucketClient(GenericBuildClient):
    """ Talks to the Builds service of Buildbucket using pRPC over JSON. """

    backend = "buildbucket"

    def __init__(self, conf, session=None):
        self.conf = conf
        self.url = conf.buildbucket_url
        self.session = session or get_requests_session(
            token=conf.buildbucket_token, retry_interval=conf.net_retry_interval)

    def __repr__(self):
        return "<BuildbucketClient %s>" % self.url

    def _call(self, method, body):
        url = "{0}/{1}".format(self.url, method)
        try:
            response = self.session.post(
                url,
                json=body,
                headers={"Accept": "application/json"},
                timeout=self.conf.net_timeout,
            )
        except requests.exceptions.RequestException as e:
            raise BackendError("Failed to call %s: %s" % (url, e))

        if response.status_code >= 500:
            raise BackendError("%s failed with HTTP %d: %s" % (
                method, response.status_code, response.text))
        if response.status_code >= 300:
            raise ExecutorError("%s was rejected with HTTP %d: %s" % (
                method, response.status_code, response.text))

        text = response.text
        if text.startswith(XSSI_PREFIX):
            text = text[len(XSSI_PREFIX):]
        try:
            return json.loads(text)
        except ValueError:
            raise BackendError("%s returned an invalid response: %r" % (method, text[:200]))

    def schedule_build(self, request):
        build = Build.from_json(self._call("ScheduleBuild", request))
        log.info("Scheduled %r", build)
        return build

    def batch(self, requests):
        if not requests:
            return []
        body = {"requests": [{"scheduleBuild": request} for request in requests]}
        responses = self._call("Batch", body).get("responses", [])
        if len(responses) != len(requests):
            raise BackendError("Batch returned %d responses for %d requests" % (
                len(responses), len(requests)))

        results = []
        for request, response in zip(requests, responses):
            if "error" in response:
                log.warning(
                    "Failed to schedule %r: %s",
                    request.get("builder"), response["error"].get("message"))
                results.append(BatchResult(None, response["error"].get("message", "")))
            else:
                results.append(BatchResult(Build.from_json(response["scheduleBuild"]), None))
        return results

    def get_build(self, build_id, fields=None):
        body = {"id": str(build_id)}
        if fields:
            body["fields"] = fields
        return Build.from_json(self._call("GetBuild", body))

    def search_builds(self, predicate, fields=None):
        builds = []
        page_token = None
        while True:
            body = {"predicate": predicate}
            if fields:
                body["fields"] = fields
            if page_token:
                body["pageToken"] = page_token
            data = self._call("SearchBuilds", body)
            builds.extend(Build.from_json(build) for build in data.get("builds", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                return builds
