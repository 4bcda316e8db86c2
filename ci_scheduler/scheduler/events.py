# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT

"""
This module defines constants for the events emitted by the external services
the scheduler works with.

GitHub sends webhooks for check suites and check runs of pull requests, the
executor publishes a notification whenever the status of a build changes.
"""

GITHUB_CHECK_SUITE = "github_check_suite"
GITHUB_CHECK_RUN = "github_check_run"
BUILD_STATUS_CHANGE = "build_status_change"
