# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import pytest
import requests
from mock import MagicMock

from ci_scheduler.common.errors import BackendError, NotFound
from ci_scheduler.github import CheckRun, GithubClient, RepositorySlug

from tests import SLUG


def response(data=None, status_code=200, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = data
    resp.text = text
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(str(status_code))
    return resp


def check_run_json(id=1, name="Linux analyze", status="queued", conclusion=None):
    return {
        "id": id,
        "name": name,
        "head_sha": "abc123",
        "status": status,
        "conclusion": conclusion,
        "details_url": None,
        "check_suite": {"id": 7},
    }


class TestRepositorySlug:
    def test_from_full_name(self):
        slug = RepositorySlug.from_full_name("flutter/engine")
        assert slug.owner == "flutter"
        assert slug.name == "engine"
        assert slug.full_name == "flutter/engine"
        assert str(slug) == "flutter/engine"

    @pytest.mark.parametrize("full_name", ["flutter", "/engine", "flutter/", "a/b/c"])
    def test_invalid(self, full_name):
        with pytest.raises(ValueError):
            RepositorySlug.from_full_name(full_name)


class TestGithubClient:
    def setup_method(self, test_method):
        self.session = MagicMock()

    def client(self, conf):
        return GithubClient(conf, session=self.session)

    def test_create_check_run(self, conf):
        self.session.request.return_value = response(check_run_json())
        check_run = self.client(conf).create_check_run(SLUG, "Linux analyze", "abc123")

        self.session.request.assert_called_once_with(
            "POST",
            conf.github_api_url + "/repos/flutter/flutter/check-runs",
            timeout=conf.net_timeout,
            json={"name": "Linux analyze", "head_sha": "abc123", "status": "queued"},
        )
        assert check_run.id == 1
        assert check_run.check_suite_id == 7
        assert not check_run.is_completed

    def test_update_check_run_sends_only_given_fields(self, conf):
        self.session.request.return_value = response(
            check_run_json(status="completed", conclusion="success"))
        check_run = CheckRun(1, "Linux analyze")
        updated = self.client(conf).update_check_run(
            SLUG, check_run, status="completed", conclusion="success")

        assert self.session.request.call_args[1]["json"] == {
            "status": "completed", "conclusion": "success"}
        assert updated.is_completed

    def test_list_check_runs_for_suite_pages(self, conf):
        first_page = [check_run_json(id=i) for i in range(100)]
        self.session.request.side_effect = [
            response({"total_count": 101, "check_runs": first_page}),
            response({"total_count": 101, "check_runs": [check_run_json(id=100)]}),
        ]
        check_runs = self.client(conf).list_check_runs_for_suite(SLUG, 7)
        assert len(check_runs) == 101
        assert self.session.request.call_args[1]["params"] == {"per_page": 100, "page": 2}

    def test_list_pull_request_files(self, conf):
        self.session.request.return_value = response([
            {"filename": "packages/flutter/lib/a.dart"},
            {"filename": "README.md"},
        ])
        files = self.client(conf).list_pull_request_files(SLUG, 1234)
        assert files == ["packages/flutter/lib/a.dart", "README.md"]

    def test_get_file_content(self, conf):
        self.session.request.return_value = response(text="targets: []\n")
        content = self.client(conf).get_file_content(SLUG, ".ci.yaml", "abc123")
        assert content == "targets: []\n"
        kwargs = self.session.request.call_args[1]
        assert kwargs["params"] == {"ref": "abc123"}
        assert kwargs["headers"] == {"Accept": "application/vnd.github.raw"}

    def test_not_found(self, conf):
        self.session.request.return_value = response(status_code=404)
        with pytest.raises(NotFound):
            self.client(conf).get_file_content(SLUG, ".ci.yaml", "abc123")

    def test_server_error(self, conf):
        self.session.request.return_value = response(status_code=502)
        with pytest.raises(BackendError):
            self.client(conf).get_check_run(SLUG, 1)

    def test_connection_error(self, conf):
        self.session.request.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(BackendError):
            self.client(conf).get_check_run(SLUG, 1)

    def test_client_error(self, conf):
        self.session.request.return_value = response(status_code=422)
        with pytest.raises(requests.exceptions.HTTPError):
            self.client(conf).get_check_run(SLUG, 1)

    def test_default_session(self, conf):
        conf.set_item("net_retry_interval", 3)
        session = GithubClient(conf).session
        assert session.headers["Accept"] == "application/vnd.github+json"
        assert session.get_adapter(conf.github_api_url).max_retries.backoff_factor == 3
