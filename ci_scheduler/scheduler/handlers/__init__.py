# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Handlers of the events the scheduler consumes. """
