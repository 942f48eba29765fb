"""Shared fixtures: sample meeting data and a scripted fake Anthropic client.

The fake routes each ``messages.create`` call by the forced tool name and
never touches the network.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from meeting_analysis.analysis.models import Template, Transcript
from meeting_analysis.config import Settings

_SECTION_HEADER = re.compile(r"^### (.+?) \(sectionId: (.+?)\)$", re.MULTILINE)

# ── Helpers ──────────────────────────────────────────────────────────────────


def tool_response(name: str, payload: Any, stop_reason: str = "tool_use") -> MagicMock:
    """Build a mock Messages API response carrying one tool_use block."""
    response = MagicMock()
    block = MagicMock()
    block.type = "tool_use"
    block.name = name
    block.input = payload
    response.content = [block]
    response.stop_reason = stop_reason
    return response


def prompt_of(kwargs: dict[str, Any]) -> str:
    return kwargs["messages"][0]["content"]


def sections_reply(kwargs: dict[str, Any]) -> dict[str, Any]:
    """Answer every section listed in the prompt, citing one real quote."""
    return {
        "sections": [
            {
                "sectionId": section_id,
                "name": name,
                "content": f"- Notes for {name}",
                "evidence": [{"text": "We should approve the budget today", "relevance": 0.9}],
            }
            for name, section_id in _SECTION_HEADER.findall(prompt_of(kwargs))
        ]
    }


AGENDA = [{"id": "agenda-1", "topic": "Budget review", "timestamp": 0}]
DECISIONS = [
    {
        "id": "decision-1",
        "decision": "Approve the budget",
        "timestamp": 12,
        "relatedAgendaItemId": "agenda-1",
    }
]
ACTION_ITEMS = [
    {
        "id": "action-1",
        "task": "Send the budget to finance",
        "owner": "Alice",
        "deadline": "Friday",
        "timestamp": 20,
        "relatedDecisionIds": ["decision-1"],
    }
]
QUOTES = [{"text": "We should approve the budget today"}]


def synthesis_reply(kwargs: dict[str, Any]) -> dict[str, Any]:
    return {
        "summary": "The team reviewed and approved the budget.",
        "agendaItems": AGENDA,
        "decisions": DECISIONS,
        "actionItems": ACTION_ITEMS,
        "quotes": QUOTES,
    }


def full_reply(kwargs: dict[str, Any]) -> dict[str, Any]:
    return {**synthesis_reply(kwargs), **sections_reply(kwargs)}


def revised_reply(kwargs: dict[str, Any]) -> dict[str, Any]:
    reply = full_reply(kwargs)
    reply["summary"] = "Revised: the budget was approved and sent to finance."
    return reply


DEFAULT_REPLIES: dict[str, Any] = {
    "record_meeting_analysis": full_reply,
    "record_sections": sections_reply,
    "record_synthesis": synthesis_reply,
    "record_agenda": {"agendaItems": AGENDA},
    "record_decisions": {"decisions": DECISIONS},
    "record_action_items": {"actionItems": ACTION_ITEMS},
    "record_final_outputs": {
        "summary": "The team reviewed and approved the budget.",
        "quotes": QUOTES,
    },
    "record_evaluation": {"qualityScore": 9, "reasoning": "Complete and faithful."},
    "record_revised_analysis": revised_reply,
}


class ScriptedAnthropic:
    """Fake ``AsyncAnthropic`` whose replies are scripted per tool name.

    A script entry is a payload, a callable ``(kwargs) -> payload``, a ready
    response object, or an exception to raise. Entries are consumed in order;
    the last one repeats. Tools without a script use ``DEFAULT_REPLIES``.
    """

    def __init__(self, scripts: dict[str, list[Any]] | None = None) -> None:
        self.scripts = {name: list(items) for name, items in (scripts or {}).items()}
        self.calls: list[dict[str, Any]] = []
        self.messages = SimpleNamespace(create=self._create)

    def tool_calls(self, name: str | None = None) -> list[str]:
        names = [c["tool_choice"]["name"] for c in self.calls]
        return [n for n in names if name is None or n == name]

    async def _create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        name = kwargs["tool_choice"]["name"]
        script = self.scripts.get(name)
        if script:
            item = script.pop(0) if len(script) > 1 else script[0]
        else:
            item = DEFAULT_REPLIES[name]
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, MagicMock):
            return item
        if callable(item):
            item = item(kwargs)
        if isinstance(item, MagicMock):
            return item
        return tool_response(name, item)


def api_request(method: str = "POST") -> httpx.Request:
    return httpx.Request(method, "https://api.anthropic.com/v1/messages")


def api_response(status_code: int) -> httpx.Response:
    return httpx.Response(status_code, request=api_request())


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def factory(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "anthropic_api_key": "test-key",
            "standard_deployment": "claude-standard",
            "standard_token_limit": 200_000,
            "extended_deployment": "claude-extended",
            "extended_token_limit": 1_000_000,
            "call_backoff_seconds": 0.0,
            "call_timeout_seconds": 5.0,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)  # type: ignore[call-arg]

    return factory


@pytest.fixture
def settings(make_settings: Callable[..., Settings]) -> Settings:
    return make_settings()


@pytest.fixture
def transcript() -> Transcript:
    segments = [
        {"index": 0, "start": 0.0, "end": 10.0, "speaker": "Alice",
         "text": "Let's start with the budget review for next quarter."},
        {"index": 1, "start": 10.0, "end": 20.0, "speaker": "Bob",
         "text": "We should approve the budget today because marketing needs it."},
        {"index": 2, "start": 20.0, "end": 30.0, "speaker": "Alice",
         "text": "Agreed. I will send the budget to finance by Friday."},
    ]
    return Transcript(
        text=" ".join(s["text"] for s in segments),
        segments=segments,
    )


@pytest.fixture
def make_template() -> Callable[..., Template]:
    def factory(
        section_count: int = 1,
        outputs: list[str] | None = None,
        **section_overrides: Any,
    ) -> Template:
        sections = [
            {
                "id": f"s{i}",
                "name": f"Section {i}",
                "prompt": f'Summarise the "budget" discussion, part {i}.',
                "extractEvidence": True,
                "outputFormat": "bullet_points",
                **section_overrides,
            }
            for i in range(1, section_count + 1)
        ]
        return Template(name="Team sync", sections=sections, outputs=outputs or ["summary"])

    return factory


@pytest.fixture
def template(make_template: Callable[..., Template]) -> Template:
    return make_template()


@pytest.fixture
def scripted() -> type[ScriptedAnthropic]:
    return ScriptedAnthropic


@pytest.fixture
def fake_client() -> ScriptedAnthropic:
    return ScriptedAnthropic()
