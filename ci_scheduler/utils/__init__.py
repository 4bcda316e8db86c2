# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
from ci_scheduler.utils.general import retry  # noqa
