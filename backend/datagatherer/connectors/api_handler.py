"""
HTTP fetch capability backed by requests.

Transport failures and timeouts are not raised: they come back as a
FetchResponse with status 0 so the run pipeline records them like any
other failed fetch.
"""
from __future__ import annotations

import json
from typing import Optional

import requests

from datagatherer.common.logger import get_logger
from datagatherer.plugins.api import ApiHandler, FetchRequest, FetchResponse

log = get_logger()


class RequestsApiHandler(ApiHandler):
    """Default fetch capability for connectors."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 30.0):
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self, request: FetchRequest) -> FetchResponse:
        log.debug(f"    {request.method} {request.url}")
        try:
            response = self.session.request(
                request.method,
                request.url,
                headers=request.headers or None,
                params=request.params or None,
                data=request.body,
                timeout=request.timeout or self.timeout,
            )
        except requests.exceptions.Timeout as e:
            return FetchResponse(status_code=0, body=json.dumps({"error": f"timeout: {e}"}))
        except requests.exceptions.RequestException as e:
            return FetchResponse(status_code=0, body=json.dumps({"error": str(e)}))
        return FetchResponse(status_code=response.status_code, body=response.text)
