"""HTTP test helpers."""

import json
from unittest.mock import MagicMock

import requests


def make_response(status_code=200, payload=None, url="https://example.test"):
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(payload).encode("utf-8") if payload is not None else b""
    response.url = url
    return response


def make_session(*responses):
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return session
