# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Thin client of the GitHub REST API, limited to checks, pulls and contents. """

import collections

import requests

from ci_scheduler import log
from ci_scheduler.common.errors import BackendError, NotFound
from ci_scheduler.utils.request_utils import get_requests_session


class RepositorySlug(collections.namedtuple("RepositorySlug", ["owner", "name"])):
    __slots__ = ()

    @classmethod
    def from_full_name(cls, full_name):
        owner, _, name = full_name.partition("/")
        if not owner or not name or "/" in name:
            raise ValueError("%r is not an owner/name repository slug" % full_name)
        return cls(owner, name)

    @property
    def full_name(self):
        return "%s/%s" % (self.owner, self.name)

    def __str__(self):
        return self.full_name


class CheckRun(object):
    """ A check run as reported by GitHub. """

    def __init__(self, id, name, head_sha=None, status="queued", conclusion=None,
                 details_url=None, check_suite_id=None):
        self.id = id
        self.name = name
        self.head_sha = head_sha
        self.status = status
        self.conclusion = conclusion
        self.details_url = details_url
        self.check_suite_id = check_suite_id

    def __repr__(self):
        return "<CheckRun %r %s, status %s, conclusion %s>" % (
            self.id, self.name, self.status, self.conclusion)

    @classmethod
    def from_json(cls, data):
        return cls(
            id=data["id"],
            name=data["name"],
            head_sha=data.get("head_sha"),
            status=data.get("status", "queued"),
            conclusion=data.get("conclusion"),
            details_url=data.get("details_url"),
            check_suite_id=(data.get("check_suite") or {}).get("id"),
        )

    @property
    def is_completed(self):
        return self.status == "completed"


class GithubClient(object):
    """
    Calls the parts of the GitHub API the scheduler needs.

    Failures to reach GitHub and 5xx responses raise BackendError, a missing
    resource raises NotFound and any other error response raises
    requests.HTTPError.
    """

    per_page = 100

    def __init__(self, conf, session=None):
        self.conf = conf
        self.api_url = conf.github_api_url
        self.session = session or get_requests_session(
            token=conf.github_token,
            headers={"Accept": "application/vnd.github+json"},
            retry_interval=conf.net_retry_interval,
        )

    def _request(self, method, path, **kwargs):
        url = "{0}/{1}".format(self.api_url, path.lstrip("/"))
        try:
            response = self.session.request(
                method, url, timeout=self.conf.net_timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise BackendError("Failed to call GitHub %s %s: %s" % (method, url, e))

        if response.status_code == 404:
            raise NotFound("GitHub resource %s was not found" % url)
        if response.status_code >= 500:
            raise BackendError(
                "GitHub %s %s failed with HTTP %d" % (method, url, response.status_code))
        response.raise_for_status()
        return response

    def _paginate(self, path, key=None, params=None):
        page = 1
        params = dict(params or {})
        while True:
            params.update({"per_page": self.per_page, "page": page})
            data = self._request("GET", path, params=params).json()
            items = data[key] if key else data
            for item in items:
                yield item
            if len(items) < self.per_page:
                return
            page += 1

    def create_check_run(self, slug, name, head_sha, status="queued", details_url=None):
        payload = {"name": name, "head_sha": head_sha, "status": status}
        if details_url:
            payload["details_url"] = details_url
        response = self._request(
            "POST", "repos/%s/check-runs" % slug.full_name, json=payload)
        check_run = CheckRun.from_json(response.json())
        log.debug("Created %r for %s@%s", check_run, slug, head_sha)
        return check_run

    def get_check_run(self, slug, check_run_id):
        response = self._request(
            "GET", "repos/%s/check-runs/%d" % (slug.full_name, check_run_id))
        return CheckRun.from_json(response.json())

    def update_check_run(self, slug, check_run, status=None, conclusion=None,
                         details_url=None, output=None):
        """
        Updates the check run and returns the updated CheckRun.

        :param RepositorySlug slug: repository owning the check run.
        :param CheckRun check_run: the check run to update.
        :param str status: queued, in_progress or completed.
        :param str conclusion: conclusion of a completed check run.
        :param str details_url: link to the build of the check run.
        :param dict output: title, summary and text of the check run.
        """
        payload = {}
        if status is not None:
            payload["status"] = status
        if conclusion is not None:
            payload["conclusion"] = conclusion
        if details_url is not None:
            payload["details_url"] = details_url
        if output is not None:
            payload["output"] = output
        response = self._request(
            "PATCH", "repos/%s/check-runs/%d" % (slug.full_name, check_run.id), json=payload)
        return CheckRun.from_json(response.json())

    def list_check_runs_for_suite(self, slug, check_suite_id):
        path = "repos/%s/check-suites/%d/check-runs" % (slug.full_name, check_suite_id)
        return [CheckRun.from_json(item) for item in self._paginate(path, key="check_runs")]

    def list_pull_request_files(self, slug, pr_number):
        path = "repos/%s/pulls/%d/files" % (slug.full_name, pr_number)
        return [item["filename"] for item in self._paginate(path)]

    def get_file_content(self, slug, path, ref):
        response = self._request(
            "GET",
            "repos/%s/contents/%s" % (slug.full_name, path),
            params={"ref": ref},
            headers={"Accept": "application/vnd.github.raw"},
        )
        return response.text
