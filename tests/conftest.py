import json
from unittest.mock import MagicMock

import pytest
import requests

import lambda_function
import rate_limit_logic
from upstream import SessionForwarder


class FakeResponse:
    def __init__(self, status_code, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text

    def json(self):
        if self._payload is None:
            return json.loads(self.text)
        return self._payload


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("OPENAI_API_KEY", "ALLOWED_ORIGINS", "SESSION_INSTRUCTIONS", "RATE_LIMIT_TABLE", "TTL_S"):
        monkeypatch.delenv(name, raising=False)
    rate_limit_logic.reset_ledger()
    monkeypatch.setattr(lambda_function, "_forwarder", None)
    yield
    rate_limit_logic.reset_ledger()


@pytest.fixture
def http():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def forwarder(http, sleeps):
    return SessionForwarder(http=http, sleep=sleeps.append)


@pytest.fixture
def api_gateway_event():
    def _build(origin="http://localhost:3000", forwarded_for="203.0.113.7", source_ip="10.0.0.1"):
        headers = {}
        if origin is not None:
            headers["Origin"] = origin
        if forwarded_for is not None:
            headers["X-Forwarded-For"] = forwarded_for
        return {
            "headers": headers,
            "requestContext": {"identity": {"sourceIp": source_ip}},
            "body": None,
        }
    return _build
