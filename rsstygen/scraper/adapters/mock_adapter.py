"""Mock Adapter for Testing.

This adapter replays scripted extraction outcomes instead of driving a
browser. It follows the same contract as WebDriverAdapter, so source jobs
and the orchestrator can be exercised without a rendering backend.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Union

from ..base import ExtractionAdapter, RawItem, Source, validate_raw_items

Outcome = Union[Sequence[Mapping[str, object]], Exception]


class MockAdapter(ExtractionAdapter):
    """Mock adapter that returns scripted results per source.

    Each source title maps to a list of outcomes consumed one per extract()
    call. An outcome is either the raw script result (validated exactly like
    a real page result) or an exception to raise. The last outcome repeats
    once the list is exhausted.

    Example:
        adapter = MockAdapter({
            "Foo": [ConnectionError("down"), [{"title": "Ch1", "url": "http://x/1"}]],
        })
        adapter.extract(foo)  # raises ConnectionError
        adapter.extract(foo)  # returns [RawItem("Ch1", "http://x/1")]
    """

    def __init__(self, outcomes: Mapping[str, Sequence[Outcome]]):
        self.outcomes = {title: list(results) for title, results in outcomes.items()}
        self.calls: dict[str, int] = {}

    def extract(self, source: Source) -> list[RawItem]:
        results = self.outcomes.get(source.title)
        if not results:
            return []

        call = self.calls.get(source.title, 0)
        self.calls[source.title] = call + 1
        outcome = results[min(call, len(results) - 1)]

        if isinstance(outcome, Exception):
            raise outcome
        return validate_raw_items(list(outcome))
