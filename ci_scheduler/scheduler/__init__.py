# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" This is a sub-module for the scheduling functionality. """
