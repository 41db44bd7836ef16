"""Tests for the analysis engine: caching, routing, chunking and fallback."""

from __future__ import annotations

import asyncio

from actionlens.analysis_config import ActionItemType, DetectionMethod, Priority, SuggestionType
from actionlens.config import Settings
from actionlens.engine.analyzer import (
    MODEL_CHUNKED,
    MODEL_NONE,
    MODEL_REGEX,
    MODEL_REGEX_FALLBACK,
    AnalysisEngine,
    engine_suggestions,
)
from actionlens.extraction.models import AnalysisOptions
from tests.fakes import FakeBackend, make_item

TEXT = "We need to fix the login bug before the release."
MARKER = "TODO: rotate the signing keys."
MARKER_OFFSET = 7003


def _login_items(text: str):
    start = text.find("fix the login bug")
    return [make_item("fix the login bug", 0.9, start=max(start, 0))]


def _long_text() -> str:
    text = "x" * 7002 + " " + MARKER + " " + "y" * 4000
    assert text.index(MARKER) == MARKER_OFFSET
    return text


class TestCaching:
    def test_second_identical_call_is_a_cache_hit(self, config: Settings) -> None:
        """The second identical analysis is served from the cache."""
        backend = FakeBackend(reply=_login_items)
        engine = AnalysisEngine(backend, config)

        async def scenario():
            return await engine.analyze(TEXT), await engine.analyze(TEXT)

        first, second = asyncio.run(scenario())

        assert first.metadata.cache_hit is False
        assert second.metadata.cache_hit is True
        assert second.detected_items == first.detected_items
        assert len(backend.calls) == 1
        assert engine.cache_size() == 1

        metrics = engine.get_performance_metrics()
        assert metrics.total_analyses == 2
        assert metrics.cache_hit_rate == 0.5

    def test_caching_disabled_per_call(self, config: Settings) -> None:
        """enable_caching=False skips both cache read and write."""
        backend = FakeBackend(reply=_login_items)
        engine = AnalysisEngine(backend, config)
        options = AnalysisOptions(enable_caching=False)

        async def scenario():
            await engine.analyze(TEXT, options=options)
            return await engine.analyze(TEXT, options=options)

        result = asyncio.run(scenario())
        assert result.metadata.cache_hit is False
        assert len(backend.calls) == 2
        assert engine.cache_size() == 0

    def test_burst_of_identical_requests_runs_one_analysis(self, config: Settings) -> None:
        """Concurrent identical requests share a single backend call."""
        backend = FakeBackend(reply=_login_items, delay=0.05)
        engine = AnalysisEngine(backend, config)

        async def scenario():
            return await asyncio.gather(*(engine.analyze(TEXT) for _ in range(5)))

        results = asyncio.run(scenario())

        assert len(backend.calls) == 1
        assert len(backend.warmed) == 1
        assert sum(not r.metadata.cache_hit for r in results) == 1
        assert all(r.detected_items == results[0].detected_items for r in results)

    def test_clear_during_analysis_discards_stale_result(self, config: Settings) -> None:
        """A result started before a cache clear is not stored."""
        backend = FakeBackend(reply=_login_items, delay=0.05)
        engine = AnalysisEngine(backend, config)

        async def scenario():
            task = asyncio.create_task(engine.analyze(TEXT))
            await asyncio.sleep(0.01)
            engine.clear_cache()
            return await task

        result = asyncio.run(scenario())
        assert len(result.detected_items) == 1
        assert engine.cache_size() == 0


class TestRouting:
    def test_short_text_is_rejected_without_work(self, config: Settings) -> None:
        """Short text never reaches the backend or the metrics."""
        backend = FakeBackend(reply=_login_items)
        engine = AnalysisEngine(backend, config)

        result = asyncio.run(engine.analyze("   fix it   "))

        assert result.detected_items == ()
        assert result.metadata.model_used == MODEL_NONE
        assert result.metadata.processing_time_ms == 0.0
        assert backend.calls == []
        assert engine.get_performance_metrics().total_analyses == 0

    def test_ai_result_is_tagged_and_deduplicated(self, config: Settings) -> None:
        """AI items are tagged with the AI method and duplicates collapse."""
        backend = FakeBackend(
            reply=lambda text: [
                make_item("Ship the beta", 0.4, start=0),
                make_item("ship  the BETA", 0.9, start=20),
            ],
            language="German",
        )
        engine = AnalysisEngine(backend, config)

        result = asyncio.run(engine.analyze("Ship the beta soon. ship  the BETA now."))

        assert len(result.detected_items) == 1
        assert result.detected_items[0].confidence == 0.9
        assert result.metadata.analysis_method is DetectionMethod.AI
        assert result.metadata.model_used == config.ollama_model
        assert result.metadata.language == "German"
        assert backend.warmed == [config.ollama_model]

    def test_model_override(self, config: Settings) -> None:
        """A per-call model name is passed to the backend."""
        backend = FakeBackend(reply=_login_items)
        engine = AnalysisEngine(backend, config)

        result = asyncio.run(engine.analyze(TEXT, options=AnalysisOptions(ollama_model="mistral")))

        assert backend.calls[0][0] == "mistral"
        assert result.metadata.model_used == "mistral"

    def test_unavailable_backend_uses_pattern_engine(
        self, config: Settings, offline_backend: FakeBackend
    ) -> None:
        """An unreachable backend routes straight to the pattern engine."""
        engine = AnalysisEngine(offline_backend, config)

        result = asyncio.run(
            engine.analyze("need to fix the login bug by Friday, @alice please review")
        )

        assert len(result.detected_items) >= 1
        assert result.metadata.analysis_method is DetectionMethod.REGEX
        assert result.metadata.model_used == MODEL_REGEX
        assert offline_backend.calls == []

    def test_always_failing_backend_falls_back_to_regex(
        self, config: Settings, failing_backend: FakeBackend
    ) -> None:
        """Backend errors fall back to patterns and count as fallbacks."""
        engine = AnalysisEngine(failing_backend, config)
        texts = [
            "We should update the onboarding guide",
            "TODO: remove the legacy endpoint.",
            "Nothing actionable in this sentence at all",
        ]

        async def scenario():
            return [await engine.analyze(text) for text in texts]

        results = asyncio.run(scenario())

        for result in results:
            assert result.metadata.analysis_method is DetectionMethod.REGEX
            assert result.metadata.model_used == MODEL_REGEX_FALLBACK
        metrics = engine.get_performance_metrics()
        assert metrics.ai_fallbacks == 3
        assert metrics.errors == 0

    def test_fallback_disabled_returns_empty(
        self, config: Settings, failing_backend: FakeBackend
    ) -> None:
        """With fallback off a failing backend yields an empty result."""
        engine = AnalysisEngine(failing_backend, config)

        result = asyncio.run(engine.analyze(TEXT, options=AnalysisOptions(fallback_to_regex=False)))

        assert result.detected_items == ()
        assert result.metadata.model_used == MODEL_NONE

    def test_failing_pattern_engine_degrades_to_empty_result(
        self, config: Settings, offline_backend: FakeBackend
    ) -> None:
        """A crashing pattern engine still returns a well-formed result."""
        def broken(text: str):
            raise RuntimeError("rule table corrupted")

        engine = AnalysisEngine(offline_backend, config, pattern_engine=broken)

        result = asyncio.run(engine.analyze(TEXT))

        assert result.detected_items == ()
        metrics = engine.get_performance_metrics()
        assert metrics.errors == 1
        assert metrics.error_rate == 1.0

    def test_check_backend_swallows_errors(self, config: Settings) -> None:
        """A backend status probe that raises reports unavailable."""
        class ExplodingBackend(FakeBackend):
            async def check_availability(self):
                raise OSError("socket closed")

        engine = AnalysisEngine(ExplodingBackend(), config)
        status = asyncio.run(engine.check_backend())
        assert not status.available
        assert "socket closed" in (status.error or "")


class TestChunkedAnalysis:
    def test_ai_positions_are_remapped_to_the_full_text(self, config: Settings) -> None:
        """Items from later chunks point into the full text."""
        def reply(text: str):
            index = text.find(MARKER)
            if index < 0:
                return []
            return [make_item(MARKER, 0.95, type=ActionItemType.TODO, start=index)]

        backend = FakeBackend(reply=reply)
        engine = AnalysisEngine(backend, config)
        text = _long_text()

        result = asyncio.run(engine.analyze(text))

        assert len(result.detected_items) == 1
        assert result.detected_items[0].text_position.start == MARKER_OFFSET
        assert result.metadata.model_used == MODEL_CHUNKED
        assert result.metadata.analysis_method is DetectionMethod.AI
        assert result.metadata.text_length == len(text)
        assert len(backend.calls) == 6

    def test_regex_positions_are_remapped_to_the_full_text(
        self, config: Settings, offline_backend: FakeBackend
    ) -> None:
        """Pattern matches in later chunks point into the full text."""
        engine = AnalysisEngine(offline_backend, config)

        result = asyncio.run(engine.analyze(_long_text()))

        todo = [item for item in result.detected_items if item.type is ActionItemType.TODO]
        assert len(todo) == 1
        assert todo[0].text_position.start == MARKER_OFFSET
        assert result.metadata.analysis_method is DetectionMethod.REGEX

    def test_mixed_chunk_methods_are_hybrid(self, config: Settings) -> None:
        """Chunks analyzed by different methods report hybrid."""
        class FlakyBackend(FakeBackend):
            async def call(self, model, text, context=None):
                if MARKER in text:
                    raise ConnectionError("dropped")
                return await super().call(model, text, context)

        engine = AnalysisEngine(FlakyBackend(), config)

        result = asyncio.run(engine.analyze(_long_text()))

        assert result.metadata.analysis_method is DetectionMethod.HYBRID


class TestEngineSuggestions:
    def test_low_confidence_and_many_urgent(self) -> None:
        """Both engine nudges fire for weak and crowded results."""
        items = [make_item(f"urgent thing {i}", 0.9, priority=Priority.URGENT) for i in range(4)]
        items.append(make_item("vague idea", 0.5))

        suggestions = engine_suggestions(items)

        assert [s.type for s in suggestions] == [SuggestionType.FORMATTING, SuggestionType.PRIORITY]
        assert "1 detected items" in suggestions[0].message

    def test_nothing_to_suggest(self) -> None:
        assert engine_suggestions([make_item("clear task", 0.9)]) == []
