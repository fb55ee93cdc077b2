"""Extraction Adapters.

This package contains concrete implementations of the ExtractionAdapter
interface.

Available adapters:
- WebDriverAdapter: Renders pages through chromedriver (webdriver_adapter.py)
- MockAdapter: Replays scripted results for tests (mock_adapter.py)
"""

from .mock_adapter import MockAdapter
from .webdriver_adapter import WebDriverAdapter, WebDriverSession

__all__ = ["MockAdapter", "WebDriverAdapter", "WebDriverSession"]
