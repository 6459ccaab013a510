# tests/conftest.py — v1
"""Shared test fixtures for all unit tests.

Provides a scripted LLM client (routed by system prompt), settings on
in-memory sqlite, a sample source, and a fully wired conveyor harness whose
dispatcher records item ids instead of running them, so tests drive the
orchestrator explicitly. No network: every model call is scripted.
"""

from __future__ import annotations

import json
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

import pytest

from scriptconveyor.api.facade import ConveyorService
from scriptconveyor.config.settings import Settings, load_settings
from scriptconveyor.core.models import (
    OwnerSettings,
    PipelineItem,
    Scene,
    ScriptContent,
    SourceData,
    SourceRef,
)
from scriptconveyor.credentials.static_store import StaticCredentialStore
from scriptconveyor.llm.base_client import BaseLLMClient
from scriptconveyor.llm.models import LLMResponse, Message
from scriptconveyor.pipeline.analyzer import ScriptAnalyzer
from scriptconveyor.pipeline.controller import RetryProgressController
from scriptconveyor.pipeline.delivery import Delivery
from scriptconveyor.pipeline.events import ProgressEvent, ProgressEventBus
from scriptconveyor.pipeline.orchestrator import PipelineOrchestrator
from scriptconveyor.pipeline.plugin_kit.models import StageContext
from scriptconveyor.pipeline.revision import RevisionForker
from scriptconveyor.pipeline.stage_plan import StagePlan, build_default_plan
from scriptconveyor.sources.memory_provider import InMemorySourceProvider
from scriptconveyor.storage.sqlite_artifact_store import SqliteArtifactStore
from scriptconveyor.storage.sqlite_item_store import SqliteItemStore
from scriptconveyor.storage.sqlite_owner_store import SqliteOwnerStore


# === Scripted LLM ===

# Phrase in the system prompt → route name.
ROUTES: tuple[tuple[str, str], ...] = (
    ("hook analyst", "hook"),
    ("structure analyst", "structure"),
    ("emotional analyst", "emotional"),
    ("call-to-action analyst", "cta"),
    ("synthesis strategist", "synthesis"),
    ("virality scorer", "scorer"),
    ("topic analyst", "analyst"),
    ("format architect", "architect"),
    ("scriptwriter", "writer"),
    ("script optimizer", "optimizer"),
)

WRITER_SCENES: list[dict[str, Any]] = [
    {"id": 1, "label": "hook", "text": "A car just charged in five minutes flat.",
     "start": 0, "end": 5},
    {"id": 2, "label": "context", "text": "Batteries have been the slowest part of electric cars.",
     "start": 5, "end": 15},
    {"id": 3, "label": "main", "text": "A new solid-state cell survived two thousand cycles.",
     "start": 15, "end": 50},
    {"id": 4, "label": "twist", "text": "And it uses no cobalt at all.",
     "start": 50, "end": 60},
    {"id": 5, "label": "cta", "text": "Would you buy one? Tell me in the comments.",
     "start": 60, "end": 65},
]

DEFAULT_RESPONSES: dict[str, dict[str, Any]] = {
    "scorer": {
        "score": 82,
        "breakdown": {
            "fact_score": 30, "relevance_score": 20, "audience_score": 16, "interest_score": 16,
        },
        "reasoning": "Concrete numbers and a broad audience.",
    },
    "analyst": {
        "main_topic": "Solid-state battery charges an electric car in five minutes",
        "sub_topics": ["charging speed", "battery life", "materials"],
        "target_audience": ["EV owners", "tech fans"],
        "emotional_angles": ["awe", "curiosity"],
        "key_facts": [
            "Five-minute charge to 80 percent",
            "Two thousand charge cycles",
            "No cobalt in the cathode",
            "Pilot production in 2027",
        ],
        "controversy_level": 3,
        "unique_angle": "The charger, not the battery, is now the bottleneck",
    },
    "architect": {
        "format_id": "hook_story",
        "reasoning": "A single surprising fact drives the story.",
        "suggested_hooks": ["Five minutes. That's it.", "Your next car charges faster than coffee."],
        "structure_template": {
            "hook": {"duration": 5, "purpose": "Shock"},
            "context": {"duration": 10, "purpose": "Why it matters"},
            "main": {"duration": 35, "purpose": "The facts"},
            "twist": {"duration": 10, "purpose": "No cobalt"},
            "cta": {"duration": 5, "purpose": "Ask opinion"},
        },
    },
    "writer": {
        "scenes": WRITER_SCENES,
        "full_text": " ".join(s["text"] for s in WRITER_SCENES),
        "estimated_duration": 65,
    },
    "hook": {"score": 88, "breakdown": {"pattern_interrupt": 90}, "issues": [], "summary": "Strong."},
    "structure": {"score": 85, "breakdown": {"flow": 85}, "issues": [], "summary": "Clean."},
    "emotional": {"score": 86, "breakdown": {"awe": 86}, "issues": [], "summary": "Engaging."},
    "cta": {"score": 84, "breakdown": {"clarity": 84}, "issues": [], "summary": "Clear ask."},
    "synthesis": {
        "strengths": ["Numbers up front"],
        "weaknesses": ["Twist could land harder"],
        "recommendations": [
            {"area": "structure", "priority": "low", "scene_id": 4,
             "issue": "Twist is short", "suggestion": "Add one concrete detail"},
        ],
    },
    "optimizer": {
        "improved_scenes": [
            {"id": 1, "label": "hook", "text": "Five minutes. A full car. No joke."},
        ],
        "changes_applied": [
            {"scene_id": 1, "original": "A car just charged", "improved": "Five minutes",
             "reason": "Punchier hook"},
        ],
    },
}


def route_for(system: str | None) -> str:
    lower = (system or "").lower()
    for phrase, route in ROUTES:
        if phrase in lower:
            return route
    return "unknown"


class ScriptedLLM(BaseLLMClient):
    """Fake model client answering from per-route scripts.

    A route answers with its queued replies first (in order), then with its
    standing response. A reply is a JSON-able dict, a raw string, or an
    exception instance to raise.
    """

    def __init__(self) -> None:
        self.responses: dict[str, Any] = {k: dict(v) for k, v in DEFAULT_RESPONSES.items()}
        self.queued: dict[str, list[Any]] = defaultdict(list)
        self.calls: list[tuple[str, list[Message], str | None]] = []

    def set(self, route: str, reply: Any) -> None:
        self.responses[route] = reply

    def enqueue(self, route: str, *replies: Any) -> None:
        self.queued[route].extend(replies)

    def count(self, route: str) -> int:
        return sum(1 for r, _, _ in self.calls if r == route)

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.4,
        model: str | None = None,
    ) -> LLMResponse:
        route = route_for(system)
        self.calls.append((route, list(messages), model))
        if self.queued[route]:
            reply = self.queued[route].pop(0)
        else:
            reply = self.responses.get(route, "{}")
        if isinstance(reply, BaseException):
            raise reply
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        return LLMResponse(
            content=reply,
            input_tokens=10,
            output_tokens=5,
            model=model or "fake-model",
            provider="fake",
        )

    @property
    def provider_name(self) -> str:
        return "fake"


# === FIXTURES: Settings and data ===


@pytest.fixture
def settings() -> Settings:
    """Settings on in-memory sqlite with short deadlines."""
    return load_settings(db_path=":memory:", llm_call_timeout_s=5.0, anthropic_api_key="")


@pytest.fixture
def fake_llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def sample_source() -> SourceData:
    return SourceData(
        type="news",
        item_id="article-42",
        title="Solid-state battery charges an EV in five minutes",
        content=(
            "Researchers presented a solid-state battery cell that charges an electric "
            "car to 80 percent in five minutes. The cell kept 90 percent of its capacity "
            "after two thousand cycles and uses a cobalt-free cathode. Pilot production "
            "is planned for 2027."
        ),
        url="https://example.com/battery",
    )


@pytest.fixture
def source_ref(sample_source: SourceData) -> SourceRef:
    return SourceRef(type=sample_source.type, item_id=sample_source.item_id)


@pytest.fixture
def sample_script() -> ScriptContent:
    return ScriptContent.from_scenes([Scene(**s) for s in WRITER_SCENES])


@pytest.fixture
def stage_context(settings: Settings, fake_llm: ScriptedLLM, source_ref: SourceRef) -> StageContext:
    """Context for running a single stage against the scripted model."""
    return StageContext(
        item_id="item-1",
        owner_id="owner-1",
        source_ref=source_ref,
        settings=settings,
        owner=OwnerSettings(owner_id="owner-1"),
        llm=fake_llm,
    )


@pytest.fixture
def item_store():
    store = SqliteItemStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def artifact_store():
    store = SqliteArtifactStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def owner_store():
    store = SqliteOwnerStore(":memory:", default_daily_limit=3)
    yield store
    store.close()


# === FIXTURES: Wired conveyor ===


class RecordingDispatcher:
    """Dispatcher that records item ids instead of running them."""

    def __init__(self) -> None:
        self.item_ids: list[str] = []

    async def __call__(self, item_id: str) -> None:
        self.item_ids.append(item_id)


@dataclass
class Harness:
    """All collaborators of one conveyor, wired like build_runtime does."""

    settings: Settings
    llm: ScriptedLLM
    provider: InMemorySourceProvider
    credentials: StaticCredentialStore
    items: SqliteItemStore
    artifacts: SqliteArtifactStore
    owners: SqliteOwnerStore
    plan: StagePlan
    analyzer: ScriptAnalyzer
    events: ProgressEventBus
    orchestrator: PipelineOrchestrator
    controller: RetryProgressController
    forker: RevisionForker
    service: ConveyorService
    dispatcher: RecordingDispatcher
    received: list[ProgressEvent] = field(default_factory=list)

    @property
    def dispatched(self) -> list[str]:
        return self.dispatcher.item_ids

    async def drain(self) -> list[PipelineItem]:
        """Run every dispatched item, in order, until none is left."""
        results = []
        while self.dispatched:
            results.append(await self.orchestrator.run(self.dispatched.pop(0)))
        return results

    async def create_item(
        self, owner_id: str, ref: SourceRef, item_id: str = "item-1"
    ) -> PipelineItem:
        return await self.items.create(PipelineItem(id=item_id, owner_id=owner_id, source_ref=ref))

    async def run_fresh(self, ref: SourceRef, owner_id: str = "owner-1") -> PipelineItem:
        """Trigger a source through the service and run it to the end."""
        result = await self.service.trigger(owner_id, ref)
        await self.drain()
        item = await self.items.get_by_id(result.item_id)
        assert item is not None
        return item


def build_harness(settings: Settings, llm: ScriptedLLM, source: SourceData) -> Harness:
    provider = InMemorySourceProvider([source])
    credentials = StaticCredentialStore({("owner-1", "anthropic"): "sk-test"})
    items = SqliteItemStore(settings.db_path)
    artifacts = SqliteArtifactStore(settings.db_path)
    owners = SqliteOwnerStore(settings.db_path, default_daily_limit=settings.daily_limit_default)
    analyzer = ScriptAnalyzer(settings)
    plan = build_default_plan(settings, provider, analyzer)
    events = ProgressEventBus()
    dispatcher = RecordingDispatcher()
    orchestrator = PipelineOrchestrator(
        items=items,
        artifacts=artifacts,
        owners=owners,
        credentials=credentials,
        plan=plan,
        delivery=Delivery(artifacts, owners),
        settings=settings,
        llm_factory=lambda provider_name, model, api_key: llm,
        events=events,
    )
    forker = RevisionForker(items, artifacts, plan, settings)
    controller = RetryProgressController(items, artifacts, plan, settings, dispatcher)
    harness = Harness(
        settings=settings,
        llm=llm,
        provider=provider,
        credentials=credentials,
        items=items,
        artifacts=artifacts,
        owners=owners,
        plan=plan,
        analyzer=analyzer,
        events=events,
        orchestrator=orchestrator,
        controller=controller,
        forker=forker,
        service=ConveyorService(items, artifacts, owners, controller, forker, dispatcher),
        dispatcher=dispatcher,
    )
    events.subscribe(harness.received.append)
    return harness


@pytest.fixture
def harness(settings: Settings, fake_llm: ScriptedLLM, sample_source: SourceData):
    h = build_harness(settings, fake_llm, sample_source)
    yield h
    h.items.close()
    h.artifacts.close()
    h.owners.close()
