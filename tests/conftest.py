"""
Pytest configuration and shared fakes.

The fakes stand in for Playwright pages/locators and for the HTTP
transport so that no browser or network is needed.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from healwright.api.client import TransportResponse
from healwright.core.metrics import MetricsCollector


@dataclass
class FakeElement:
    """One element of a fake DOM."""

    selectors: set[str] = field(default_factory=set)
    role: str | None = None
    name: str | None = None
    text: str | None = None
    placeholder: str | None = None
    test_id: str | None = None
    visible: bool = True


class FakeLocator:
    """Mimics the parts of playwright's Locator the harness uses."""

    def __init__(
        self,
        page: "FakePage",
        description: str,
        matcher: Callable[[FakeElement], bool],
        first_only: bool = False,
    ):
        self.page = page
        self.description = description
        self._matcher = matcher
        self._first_only = first_only
        self.clicked = 0
        self.filled: list[str] = []

    def matches(self) -> list[FakeElement]:
        found = [el for el in self.page.elements if self._matcher(el)]
        return found[:1] if self._first_only else found

    @property
    def first(self) -> "FakeLocator":
        return FakeLocator(
            self.page, f"{self.description} >> nth=0", self._matcher, first_only=True
        )

    async def count(self) -> int:
        return len(self.matches())

    async def wait_for(self, state: str = "visible", timeout: float | None = None) -> None:
        self.page.waits.append((self.description, timeout))
        if self.page.block_waits:
            await asyncio.Event().wait()
        if state == "visible" and any(el.visible for el in self.matches()):
            return
        if state == "hidden" and not any(el.visible for el in self.matches()):
            return
        raise PlaywrightTimeoutError(
            f"Timeout {timeout}ms exceeded waiting for {self.description}"
        )

    async def click(self, timeout: float | None = None) -> None:
        if not any(el.visible for el in self.matches()):
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded clicking {self.description}")
        self.clicked += 1
        self.page.actions.append(("click", self.description))

    async def fill(self, value: str, timeout: float | None = None) -> None:
        if not any(el.visible for el in self.matches()):
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded filling {self.description}")
        self.filled.append(value)
        self.page.actions.append(("fill", self.description))


class FakePage:
    """A page with a static list of elements and Playwright-style queries."""

    def __init__(self, elements: list[FakeElement] | None = None, url: str = "https://app.test/"):
        self.elements = elements or []
        self.url = url
        self.queries: list[str] = []
        self.waits: list[tuple[str, float | None]] = []
        self.actions: list[tuple[str, str]] = []
        self.block_waits = False
        self.evaluate_results: list[Any] = []

    def _query(self, description: str, matcher: Callable[[FakeElement], bool]) -> FakeLocator:
        self.queries.append(description)
        return FakeLocator(self, description, matcher)

    def locator(self, selector: str) -> FakeLocator:
        return self._query(f"css={selector}", lambda el: selector in el.selectors)

    def get_by_role(self, role: str, name: str | None = None) -> FakeLocator:
        def match(el: FakeElement) -> bool:
            if el.role != role:
                return False
            return name is None or name.lower() in (el.name or "").lower()

        return self._query(f"role={role}[name={name}]", match)

    def get_by_text(self, text: str, exact: bool = False) -> FakeLocator:
        def match(el: FakeElement) -> bool:
            if el.text is None:
                return False
            if exact:
                return el.text.strip() == text
            return text.lower() in el.text.lower()

        return self._query(f"text={text}[exact={exact}]", match)

    def get_by_placeholder(self, text: str) -> FakeLocator:
        return self._query(
            f"placeholder={text}",
            lambda el: el.placeholder is not None and text.lower() in el.placeholder.lower(),
        )

    def get_by_test_id(self, test_id: str) -> FakeLocator:
        return self._query(f"testid={test_id}", lambda el: el.test_id == test_id)

    async def goto(self, url: str, wait_until: str | None = None, timeout: float | None = None):
        self.actions.append(("goto", url))
        self.url = url

    async def title(self) -> str:
        return "Fake Page"

    async def evaluate(self, expression: str) -> Any:
        result = self.evaluate_results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


class RecordingTransport:
    """Transport returning scripted outcomes and recording every call."""

    def __init__(self, *outcomes: TransportResponse | Exception):
        self.outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def send(self, method, url, *, headers, params, body, timeout_ms):
        self.calls.append(
            {
                "method": method,
                "url": url,
                "headers": headers,
                "params": params,
                "body": body,
                "timeout_ms": timeout_ms,
            }
        )
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True


class RecordingSleep:
    """Stand-in for asyncio.sleep that returns immediately."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def json_response(status: int = 200, body: str = "{}", **headers: str) -> TransportResponse:
    return TransportResponse(
        status=status,
        status_text={200: "OK", 201: "Created", 404: "Not Found", 500: "Internal Server Error"}.get(
            status, ""
        ),
        headers={"Content-Type": "application/json", **headers},
        body_text=body,
    )


@pytest.fixture
def metrics():
    """Fresh collector per test."""
    return MetricsCollector()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def login_page():
    """A page where the old '#login-btn' id no longer exists."""
    return FakePage(
        [
            FakeElement(selectors={"#user-name"}, role="textbox", placeholder="Username"),
            FakeElement(selectors={"#password"}, role="textbox", placeholder="Password"),
            FakeElement(
                selectors={"#login-button"},
                role="button",
                name="Login",
                text="Login",
                test_id="login-button",
            ),
            FakeElement(text="Forgot your login details?"),
        ]
    )
