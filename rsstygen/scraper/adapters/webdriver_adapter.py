"""
WebDriver extraction adapter.

Talks the W3C WebDriver HTTP protocol to a local chromedriver to render a
source page, wait for its chapter list and run the source's extraction
script inside the page.
Protocol reference: https://www.w3.org/TR/webdriver2/
"""

import logging
import time
from typing import Any, Callable, Optional, Union

import requests

from ..base import (
    ExtractionAdapter,
    ExtractionTimeout,
    RawItem,
    RenderingConnectionError,
    ScriptError,
    Source,
    validate_raw_items,
)

logger = logging.getLogger(__name__)

# Constants
READY_TIMEOUT_SECONDS = 30
REQUEST_TIMEOUT_SECONDS = 60
POLL_INTERVAL_SECONDS = 0.5
DEFAULT_BASE_URL = "http://localhost:4444"

CHROME_CAPABILITIES = {
    "capabilities": {
        "alwaysMatch": {
            "browserName": "chrome",
            "goog:chromeOptions": {
                "args": ["--headless=new", "--disable-gpu", "--no-sandbox"],
            },
        }
    }
}


class WebDriverError(Exception):
    """An error payload returned by the WebDriver endpoint."""

    def __init__(self, error: str, message: str, status_code: int):
        super().__init__(f"{error}: {message}")
        self.error = error
        self.message = message
        self.status_code = status_code


class WebDriverSession:
    """
    A single browser session on the rendering backend.

    Only the handful of commands the scraper needs are implemented.
    """

    def __init__(
        self,
        base_url: str,
        http: Optional[requests.Session] = None,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_http = http is None
        self.http = http or requests.Session()
        self.request_timeout = request_timeout
        self.session_id: Optional[str] = None

    def _command(self, method: str, path: str, payload: Optional[dict[str, Any]] = None) -> Any:
        """Send a WebDriver command and return its `value`.

        Raises:
            RenderingConnectionError: On transport failures
            WebDriverError: If the endpoint answers with an error payload
        """
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(
                method, url, json=payload, timeout=self.request_timeout
            )
        except requests.exceptions.RequestException as e:
            raise RenderingConnectionError(f"Rendering backend unreachable at {url}: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise WebDriverError(
                "invalid response", f"non-JSON body from {url}", response.status_code
            ) from e

        value = body.get("value") if isinstance(body, dict) else None
        if response.status_code >= 400:
            error = value.get("error", "unknown error") if isinstance(value, dict) else "unknown error"
            message = value.get("message", "") if isinstance(value, dict) else ""
            raise WebDriverError(error, message, response.status_code)
        return value

    def _session_path(self, suffix: str = "") -> str:
        if not self.session_id:
            raise RuntimeError("WebDriver session is not open")
        return f"/session/{self.session_id}{suffix}"

    def open(self) -> None:
        """Create a new browser session.

        Raises:
            RenderingConnectionError: If the session cannot be created
        """
        try:
            value = self._command("POST", "/session", CHROME_CAPABILITIES)
        except WebDriverError as e:
            raise RenderingConnectionError(f"Could not create browser session: {e}") from e
        if not isinstance(value, dict) or "sessionId" not in value:
            raise RenderingConnectionError("Rendering backend returned no session id")
        self.session_id = value["sessionId"]

    def navigate(self, url: str) -> None:
        self._command("POST", self._session_path("/url"), {"url": url})

    def has_element(self, css_selector: str) -> bool:
        """Return True if the selector currently matches an element."""
        try:
            self._command(
                "POST",
                self._session_path("/element"),
                {"using": "css selector", "value": css_selector},
            )
        except WebDriverError as e:
            if e.error == "no such element":
                return False
            raise
        return True

    def execute(self, script: str, args: Optional[list[Any]] = None) -> Any:
        return self._command(
            "POST",
            self._session_path("/execute/sync"),
            {"script": script, "args": args or []},
        )

    def close(self) -> None:
        """Delete the browser session and release a self-created HTTP pool."""
        try:
            if self.session_id:
                self._command("DELETE", self._session_path())
        finally:
            self.session_id = None
            if self._owns_http:
                self.http.close()


class WebDriverAdapter(ExtractionAdapter):
    """
    Extraction adapter backed by a WebDriver endpoint (chromedriver).

    Every extract() call uses its own browser session, opened at the start
    and always closed at the end.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        ready_timeout: float = READY_TIMEOUT_SECONDS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        log: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
        session_factory: Optional[Callable[[str], WebDriverSession]] = None,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the adapter.

        Args:
            base_url: WebDriver endpoint of the rendering backend
            ready_timeout: Seconds to wait for the ready selector
            poll_interval: Seconds between ready selector checks
            log: Logger to report through (defaults to the module logger)
            session_factory: Builds a session for a base URL (tests inject fakes)
        """
        self.base_url = base_url
        self.ready_timeout = ready_timeout
        self.poll_interval = poll_interval
        self.log = log or logger
        self.session_factory = session_factory or WebDriverSession
        self.monotonic = monotonic
        self.sleep = sleep

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(base_url='{self.base_url}')"

    def extract(self, source: Source) -> list[RawItem]:
        session = self.session_factory(self.base_url)
        try:
            session.open()
            return self._extract_items(session, source)
        finally:
            self.log.debug("Closing crawler session")
            try:
                session.close()
            except (RenderingConnectionError, WebDriverError) as e:
                self.log.warning("Error closing crawler session: %s", e)

    def _extract_items(self, session: WebDriverSession, source: Source) -> list[RawItem]:
        try:
            session.navigate(source.url)
        except WebDriverError as e:
            raise RenderingConnectionError(f"Navigation to {source.url} failed: {e}") from e

        self._wait_for_selector(session, source.ready_selector)

        try:
            result = session.execute(source.extraction_script)
        except WebDriverError as e:
            raise ScriptError(f"Extraction script failed: {e}") from e

        items = validate_raw_items(result)
        for item in items:
            self.log.debug("Extracted %s", item)
        return items

    def _wait_for_selector(self, session: WebDriverSession, selector: str) -> None:
        """Poll until the selector matches or the ready timeout elapses.

        Raises:
            ExtractionTimeout: If the selector never matches in time
        """
        deadline = self.monotonic() + self.ready_timeout
        while True:
            try:
                if session.has_element(selector):
                    return
            except WebDriverError as e:
                if e.error == "invalid selector":
                    raise ScriptError(f"Invalid ready selector '{selector}': {e}") from e
                raise RenderingConnectionError(f"Waiting for '{selector}' failed: {e}") from e
            if self.monotonic() >= deadline:
                raise ExtractionTimeout(
                    f"'{selector}' did not appear within {self.ready_timeout:g} seconds"
                )
            self.sleep(self.poll_interval)
