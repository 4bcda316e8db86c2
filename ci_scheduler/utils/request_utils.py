# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


def get_requests_session(token=None, headers=None, retry_interval=0.5):
    """
    Create a requests session with a retry adapter for connection errors.

    Only failures to connect are retried: a request which reached the server
    is never sent twice, the callers own their retry policy.

    :param str token: optional bearer token sent with every request.
    :param dict headers: optional headers sent with every request.
    :param float retry_interval: backoff factor of the connection retries, in seconds.
    :return: configured requests session
    :rtype: requests.Session
    """
    session = requests.Session()
    retry = Retry(total=3, connect=3, read=0, status=0, backoff_factor=retry_interval)
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    if token:
        session.headers["Authorization"] = "Bearer {}".format(token)
    if headers:
        session.headers.update(headers)
    return session
