from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest
import requests


class FakeResponse:
    def __init__(self, body: Any, status_code: int = 200) -> None:
        self.text = body if isinstance(body, str) else json.dumps(body)
        self.status_code = status_code

    def json(self) -> Any:
        return json.loads(self.text)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeSession:
    """Stands in for requests.Session: url -> body, FakeResponse or exception."""

    def __init__(self, routes: Dict[str, Any] | None = None) -> None:
        self.routes: Dict[str, Any] = dict(routes or {})
        self.calls: List[str] = []
        self.last_kwargs: Dict[str, Any] = {}

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append(url)
        self.last_kwargs = kwargs
        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"connection refused: {url}")
        if isinstance(route, BaseException):
            raise route
        if isinstance(route, FakeResponse):
            return route
        return FakeResponse(route)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
