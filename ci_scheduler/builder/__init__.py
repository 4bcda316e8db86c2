# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
from ci_scheduler.builder.base import GenericBuildClient, Build, BatchResult
from ci_scheduler.builder.BuildbucketClient import BuildbucketClient

__all__ = ["GenericBuildClient", "Build", "BatchResult"]

GenericBuildClient.register_backend_class(BuildbucketClient)
