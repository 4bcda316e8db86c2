# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""The scheduling core of the continuous-integration dashboard.

The scheduler coordinates the builds of CI targets and is responsible
for a number of tasks:

- Reading the per-branch scheduling configuration (``.ci.yaml``) and
  deciding which targets apply to a commit or a pull request.
- Triggering the builds of those targets on the remote build executor,
  retrying and reprioritizing them.
- Keeping the GitHub check runs of pull requests in sync with the state
  reported by the executor.
- Backfilling postsubmit history when capacity frees up, so that no
  commit is left untested.
"""

from importlib import metadata
from logging import getLogger

try:
    version = metadata.version("ci-scheduler")
except metadata.PackageNotFoundError:
    version = "unknown"

log = getLogger(__name__)
