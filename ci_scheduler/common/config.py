# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT

"""Configuration handler functions."""

import importlib.util
import os
import re
import sys

from ci_scheduler.common import logger


def init_config():
    """
    Configure the CI scheduler and return the Config instance.

    The configuration file is a python module holding configuration classes,
    such as ``conf/config.py``. The class named by CI_SCHEDULER_CONFIG_SECTION
    is used; when running the tests, TestConfiguration is used by default.
    """
    config_file = os.environ.get("CI_SCHEDULER_CONFIG_FILE", "/etc/ci-scheduler/config.py")
    if not os.path.exists(config_file):
        here = os.path.abspath(os.path.dirname(__file__))
        config_file = os.path.join(here, "..", "..", "conf", "config.py")

    if any("pytest" in arg or "py.test" in arg for arg in sys.argv):
        default_section = "TestConfiguration"
    else:
        default_section = "ProdConfiguration"
    config_section = os.environ.get("CI_SCHEDULER_CONFIG_SECTION", default_section)

    config_module = load_config_module(config_file)
    try:
        config_section_obj = getattr(config_module, config_section)
    except AttributeError:
        raise ValueError(
            "Configuration section {} is not defined in {}".format(config_section, config_file))

    return from_config_section(config_section_obj)


def load_config_module(path):
    spec = importlib.util.spec_from_file_location("ci_scheduler_runtime_config", path)
    config_module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(config_module)
    return config_module


def from_config_section(config_section_obj):
    """ Create the configuration instance from the upper-case attributes of
    a configuration class.
    """
    conf = Config()
    for key in dir(config_section_obj):
        if not key.isupper():
            continue
        conf.set_item(key.lower(), getattr(config_section_obj, key))
    return conf


class Config(object):
    """Class representing the CI scheduler configuration."""
    _defaults = {
        "db": {
            "type": str,
            "default": "sqlite://",
            "desc": "RDB URL."},
        "github_api_url": {
            "type": str,
            "default": "https://api.github.com",
            "desc": "Base URL of the GitHub REST API."},
        "github_token": {
            "type": str,
            "default": "",
            "desc": "Token used to authenticate against the GitHub API."},
        "ci_yaml_path": {
            "type": str,
            "default": ".ci.yaml",
            "desc": "Path of the scheduling configuration inside a repository."},
        "supported_repos": {
            "type": list,
            "default": ["flutter/flutter"],
            "desc": "Repositories, as owner/name, tracked by the scheduler."},
        "default_branch": {
            "type": str,
            "default": "main",
            "desc": "Branch backfilled by the backfiller."},
        "build_backend": {
            "type": str,
            "default": "buildbucket",
            "desc": "Name of the executor client used to schedule builds."},
        "buildbucket_url": {
            "type": str,
            "default": "https://cr-buildbucket.appspot.com/prpc/buildbucket.v2.Builds",
            "desc": "Base URL of the executor's pRPC Builds service."},
        "buildbucket_token": {
            "type": str,
            "default": "",
            "desc": "Token used to authenticate against the executor."},
        "luci_project": {
            "type": str,
            "default": "flutter",
            "desc": "Executor project the builders belong to."},
        "try_bucket": {
            "type": str,
            "default": "try",
            "desc": "Executor bucket of presubmit builders."},
        "prod_bucket": {
            "type": str,
            "default": "prod",
            "desc": "Executor bucket of postsubmit builders."},
        "pubsub_topic": {
            "type": str,
            "default": "projects/flutter-dashboard/topics/luci-builds",
            "desc": "Topic the executor publishes build notifications to."},
        "backfiller_target_limit": {
            "type": int,
            "default": 50,
            "desc": "Maximum number of targets scheduled by one backfill pass."},
        "backfiller_commit_limit": {
            "type": int,
            "default": 5,
            "desc": "Number of recent commits a backfill pass looks at."},
        "backfiller_max_workers": {
            "type": int,
            "default": 8,
            "desc": "Number of parallel build submissions of one backfill pass."},
        "scheduler_retry_attempts": {
            "type": int,
            "default": 3,
            "desc": "Number of attempts to submit backfill builds."},
        "scheduler_retry_delay": {
            "type": float,
            "default": 1.0,
            "desc": "Delay, in seconds, before the first resubmission."},
        "scheduler_retry_backoff": {
            "type": float,
            "default": 2.0,
            "desc": "Factor the retry delay is multiplied with after each attempt."},
        "net_timeout": {
            "type": int,
            "default": 30,
            "desc": "Global network timeout for read/write operations, in seconds."},
        "net_retry_interval": {
            "type": float,
            "default": 1,
            "desc": "Global network retry interval for read/write operations, in seconds."},
        "log_backend": {
            "type": str,
            "default": None,
            "desc": "Log backend"},
        "log_file": {
            "type": str,
            "default": "",
            "desc": "Path to log file"},
        "log_level": {
            "type": str,
            "default": "info",
            "desc": "Log level"},
    }

    def __init__(self):
        """Initialize the Config object with defaults."""

        for name, values in self._defaults.items():
            self.set_item(name, values["default"])

    def set_item(self, key, value):
        if key == "set_item" or key.startswith("_"):
            raise Exception("Configuration item's name is not allowed: %s" % key)

        # customized check & set if there's a corresponding handler
        setifok_func = "_setifok_{}".format(key)
        if hasattr(self, setifok_func):
            getattr(self, setifok_func)(value)
            return

        # managed/registered configuration items
        if key in self._defaults:
            # type conversion for configuration item
            convert = self._defaults[key]["type"]
            if convert in [bool, int, float, list, str]:
                try:
                    setattr(self, key, convert(value))
                except (TypeError, ValueError):
                    raise TypeError("Configuration value conversion failed for name: %s" % key)
            # if type is None, do not perform any conversion
            elif convert is None:
                setattr(self, key, value)
            # unknown type/unsupported conversion
            else:
                raise TypeError("Unsupported type %s for configuration item name: %s" % (
                    convert, key))
        # passthrough for unmanaged configuration items
        else:
            setattr(self, key, value)

    def _setifok_log_backend(self, s):
        if s is None:
            s = "console"
        elif s not in logger.supported_log_backends():
            raise ValueError("Unsupported log backend")
        self.log_backend = str(s)

    def _setifok_log_file(self, s):
        if s is None:
            self.log_file = ""
        else:
            self.log_file = str(s)

    def _setifok_log_level(self, s):
        level = str(s).lower()
        self.log_level = logger.str_to_log_level(level)

    def _setifok_supported_repos(self, repos):
        if not isinstance(repos, (list, tuple)):
            raise TypeError("supported_repos needs to be a list.")
        for repo in repos:
            if not re.match(r"^[^/\s]+/[^/\s]+$", str(repo)):
                raise ValueError("Repository %r is not in the owner/name format" % repo)
        self.supported_repos = [str(repo) for repo in repos]

    def _setifok_backfiller_target_limit(self, i):
        if not isinstance(i, int):
            raise TypeError("backfiller_target_limit needs to be an int")
        if i < 1:
            raise ValueError("backfiller_target_limit must be >= 1")
        self.backfiller_target_limit = i

    def _setifok_backfiller_commit_limit(self, i):
        if not isinstance(i, int):
            raise TypeError("backfiller_commit_limit needs to be an int")
        if i < 1:
            raise ValueError("backfiller_commit_limit must be >= 1")
        self.backfiller_commit_limit = i

    def _setifok_scheduler_retry_attempts(self, i):
        if not isinstance(i, int):
            raise TypeError("scheduler_retry_attempts needs to be an int")
        if i < 1:
            raise ValueError("scheduler_retry_attempts must be >= 1")
        self.scheduler_retry_attempts = i

    def _setifok_buildbucket_url(self, s):
        self.buildbucket_url = str(s).rstrip("/")

    def _setifok_github_api_url(self, s):
        self.github_api_url = str(s).rstrip("/")
