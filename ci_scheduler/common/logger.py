# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT

"""
Logging functions.

At the beginning of the CI scheduler flow, the following has to be done to
initialize the logging:

    from ci_scheduler.common.config import init_config
    from ci_scheduler.common.logger import init_logging

    conf = init_config()
    init_logging(conf)

Later, in the code, the log object exported by the package can be used:

    from ci_scheduler import log

    log.info("Scheduling %d builds", len(builds))
"""

import logging

levels = {
    "debug": logging.DEBUG,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
}

log_format = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"


def str_to_log_level(level):
    """
    Returns internal representation of logging level defined
    by the string `level`.

    Available levels are: debug, info, warning, error
    """
    if level not in levels:
        return logging.NOTSET

    return levels[level]


def supported_log_backends():
    return ("console", "file")


def init_logging(conf):
    """
    Initializes logging according to configuration file.
    """
    log_backend = conf.log_backend

    if not log_backend or len(log_backend) == 0 or log_backend == "console":
        logging.basicConfig(level=conf.log_level, format=log_format)
    else:
        logging.basicConfig(filename=conf.log_file, level=conf.log_level, format=log_format)

    log = logging.getLogger("ci_scheduler")
    log.setLevel(conf.log_level)
    # urllib3 is chatty at debug level, one line per request.
    logging.getLogger("urllib3").setLevel(max(conf.log_level, logging.INFO))
