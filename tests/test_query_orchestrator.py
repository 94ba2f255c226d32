import pytest

from conftest import (
    REVENUE_SQL, FakeClock, FakeExecutor, FakeGenerator, FakeOptimizer, FakeSchemaProvider,
    FakeSettingsProvider, FakeValidator, RecordingNotifier, RecordingPublisher, make_enhanced_context,
    make_option
)
from models.requests import QueryOptions, QueryRequest
from models.responses import ExecutionResult, ProcessingPath
from models.selection import QualityTier
from services.model_registry import ModelCapabilityRegistry
from services.model_selector import ModelSelector
from services.performance_tracker import PerformanceTracker, ProviderAvailabilityTracker
from utils.config import settings


BASIC_PERCENTS = [5, 10, 20, 25, 40, 50, 65, 70, 90, 92, 100]
ENHANCED_PERCENTS = [5, 20, 40, 50, 65, 70, 90, 92, 100]


def make_request(question="Show total revenue by country", context=None, **options):
    return QueryRequest(
        user_id="u1",
        question=question,
        session_id="s1",
        options=QueryOptions(**options),
        enhanced_context=context
    )


def is_monotonic(percents):
    return all(a <= b for a, b in zip(percents, percents[1:]))


@pytest.mark.asyncio
async def test_basic_path_end_to_end(build_orchestrator, generator, executor, notifier):
    orchestrator = build_orchestrator()

    response = await orchestrator.process_query(make_request())

    assert response.success is True
    assert response.sql == REVENUE_SQL
    assert response.result.row_count == 2
    assert response.confidence == pytest.approx(0.9)
    assert response.processing_path == ProcessingPath.BASIC
    assert response.fallback_reason is None
    assert response.cached is False
    assert response.prompt_details.template == "basic"
    assert notifier.percents == BASIC_PERCENTS
    assert notifier.stages[0] == "cache_check"
    assert notifier.stages[-1] == "completed"
    assert executor.calls == [REVENUE_SQL]
    assert len(generator.calls) == 1


@pytest.mark.asyncio
async def test_repeated_question_is_served_from_cache(build_orchestrator, generator, executor, notifier):
    orchestrator = build_orchestrator()
    first = await orchestrator.process_query(make_request())
    notifier.updates.clear()

    second = await orchestrator.process_query(make_request("show total revenue by country"))

    assert second.cached is True
    assert second.success is True
    assert second.sql == first.sql
    assert second.query_id != first.query_id
    assert notifier.percents == [5, 100]
    assert len(generator.calls) == 1
    assert len(executor.calls) == 1


@pytest.mark.asyncio
async def test_cache_disabled_per_request(build_orchestrator, generator):
    orchestrator = build_orchestrator()
    await orchestrator.process_query(make_request())

    response = await orchestrator.process_query(make_request(enable_cache=False))

    assert response.cached is False
    assert len(generator.calls) == 2


@pytest.mark.asyncio
async def test_cache_disabled_by_admin_switch(build_orchestrator, generator):
    orchestrator = build_orchestrator(settings_provider=FakeSettingsProvider(EnableQueryCaching=False))
    await orchestrator.process_query(make_request())

    response = await orchestrator.process_query(make_request())

    assert response.cached is False
    assert len(generator.calls) == 2


@pytest.mark.asyncio
async def test_enhanced_path_skips_analysis(build_orchestrator, generator, notifier):
    schema_provider = FakeSchemaProvider()
    orchestrator = build_orchestrator(schema_provider=schema_provider)
    context = make_enhanced_context()

    response = await orchestrator.process_query(make_request(context=context))

    assert response.success is True
    assert response.processing_path == ProcessingPath.ENHANCED
    assert response.fallback_reason is None
    assert response.prompt_details.template == "enhanced"
    assert notifier.percents == ENHANCED_PERCENTS
    assert "schema_conversion" in notifier.stages
    assert "intent_analysis" not in notifier.stages
    assert schema_provider.calls == 0

    call = generator.calls[0]
    assert call["prompt"] == context.enhanced_prompt
    assert call["schema"].tables[0].qualified_name == "main.sales"
    assert call["schema"].tables[0].columns[2].data_type == "decimal(18,2)"


@pytest.mark.asyncio
async def test_low_confidence_context_uses_basic_path(build_orchestrator, notifier):
    orchestrator = build_orchestrator()

    response = await orchestrator.process_query(make_request(context=make_enhanced_context(confidence=0.05)))

    assert response.success is True
    assert response.processing_path == ProcessingPath.BASIC
    assert response.fallback_reason == "Low business context confidence (5.00%)"
    assert notifier.percents == BASIC_PERCENTS


@pytest.mark.asyncio
async def test_enhanced_error_falls_back_once(build_orchestrator, notifier):
    """An unexpected error on the enhanced path restarts on the basic path"""
    generator = FakeGenerator(responses=[RuntimeError("provider down"), REVENUE_SQL])
    orchestrator = build_orchestrator(sql_generator=generator)

    response = await orchestrator.process_query(make_request(context=make_enhanced_context()))

    assert response.success is True
    assert response.processing_path == ProcessingPath.BASIC
    assert response.fallback_reason == "Enhanced processing failed: provider down"
    assert len(generator.calls) == 2
    # The failing provider sits out the retry
    assert generator.calls[1]["provider_id"] != generator.calls[0]["provider_id"]
    assert is_monotonic(notifier.percents)
    assert notifier.percents[-1] == 100


@pytest.mark.asyncio
async def test_generation_failure_is_terminal(build_orchestrator, notifier):
    generator = FakeGenerator(responses=["I cannot answer that"])
    orchestrator = build_orchestrator(sql_generator=generator)

    response = await orchestrator.process_query(make_request())

    assert response.success is False
    assert response.error == "Failed to generate valid SQL"
    assert response.sql == "I cannot answer that"
    assert response.confidence == 0.0
    assert response.suggestions
    assert notifier.stages[-1] == "failed"
    assert notifier.percents[-1] == 40


@pytest.mark.asyncio
async def test_generation_failure_on_enhanced_path_does_not_fall_back(build_orchestrator):
    generator = FakeGenerator(responses=["no sql here"])
    orchestrator = build_orchestrator(sql_generator=generator)

    response = await orchestrator.process_query(make_request(context=make_enhanced_context()))

    assert response.success is False
    assert response.processing_path == ProcessingPath.ENHANCED
    assert response.fallback_reason is None
    assert len(generator.calls) == 1


@pytest.mark.asyncio
async def test_validation_failure_keeps_rejected_sql(build_orchestrator, executor):
    orchestrator = build_orchestrator(sql_validator=FakeValidator(valid=False))

    response = await orchestrator.process_query(make_request())

    assert response.success is False
    assert response.sql == REVENUE_SQL
    assert "SELECT" in response.error
    assert executor.calls == []


@pytest.mark.asyncio
async def test_execution_failure_is_reported(build_orchestrator, notifier):
    executor = FakeExecutor(ExecutionResult(success=False, error='Table "salez" does not exist'))
    orchestrator = build_orchestrator(sql_executor=executor)

    response = await orchestrator.process_query(make_request())

    assert response.success is False
    assert response.error == "The query references a table that doesn't exist."
    assert response.sql == REVENUE_SQL
    assert notifier.percents[-1] == 70


@pytest.mark.asyncio
async def test_failed_queries_are_not_cached(build_orchestrator):
    generator = FakeGenerator(responses=["nothing useful"])
    orchestrator = build_orchestrator(sql_generator=generator)
    await orchestrator.process_query(make_request())

    response = await orchestrator.process_query(make_request())

    assert response.cached is False
    assert response.success is True


@pytest.mark.asyncio
async def test_cancelled_before_start(build_orchestrator, generator, notifier, cancel_token):
    cancel_token.cancel()
    orchestrator = build_orchestrator()

    response = await orchestrator.process_query(make_request(), cancel_token)

    assert response.success is False
    assert response.error == "Query was cancelled"
    assert generator.calls == []
    assert notifier.stages == ["failed"]


@pytest.mark.asyncio
async def test_cancelled_mid_pipeline(build_orchestrator, generator, executor, notifier, cancel_token):
    notifier.on_update = lambda stage, percent: cancel_token.cancel() if stage == "sql_generation" else None
    orchestrator = build_orchestrator()

    response = await orchestrator.process_query(make_request(), cancel_token)

    assert response.success is False
    assert response.error == "Query was cancelled"
    assert generator.calls == []
    assert executor.calls == []
    assert notifier.updates[-1] == ("failed", 40)


@pytest.mark.asyncio
async def test_confident_optimization_is_applied(build_orchestrator, executor, publisher):
    orchestrator = build_orchestrator(sql_optimizer=FakeOptimizer(confidence=0.9, suffix=" LIMIT 1000"))

    response = await orchestrator.process_query(make_request())

    assert response.sql == REVENUE_SQL + " LIMIT 1000"
    assert executor.calls == [REVENUE_SQL + " LIMIT 1000"]
    assert publisher.events[0].optimization_applied is True


@pytest.mark.asyncio
async def test_optimization_at_threshold_is_ignored(build_orchestrator, executor, publisher):
    """The rewrite needs strictly more than the threshold"""
    orchestrator = build_orchestrator(sql_optimizer=FakeOptimizer(confidence=0.8, suffix=" LIMIT 1000"))

    response = await orchestrator.process_query(make_request())

    assert response.sql == REVENUE_SQL
    assert executor.calls == [REVENUE_SQL]
    assert publisher.events[0].optimization_applied is False
    assert publisher.events[0].optimization_score == pytest.approx(0.8)


@pytest.mark.asyncio
async def test_event_is_published_after_success(build_orchestrator, publisher):
    orchestrator = build_orchestrator()

    response = await orchestrator.process_query(make_request())

    event = publisher.events[0]
    assert event.query_id == response.query_id
    assert event.generated_sql == REVENUE_SQL
    assert event.row_count == 2
    assert event.cache_hit is False


@pytest.mark.asyncio
async def test_side_channel_failures_do_not_fail_query(build_orchestrator):
    orchestrator = build_orchestrator(
        progress_notifier=RecordingNotifier(fail=True),
        event_publisher=RecordingPublisher(fail=True)
    )

    response = await orchestrator.process_query(make_request())

    assert response.success is True


@pytest.mark.asyncio
async def test_unexpected_error_on_basic_path(build_orchestrator, notifier):
    orchestrator = build_orchestrator(schema_provider=FakeSchemaProvider(error=RuntimeError("catalog offline")))

    response = await orchestrator.process_query(make_request())

    assert response.success is False
    assert response.error == "An unexpected error occurred. Please try again."
    assert response.sql == ""
    assert notifier.stages[-1] == "failed"


@pytest.mark.asyncio
async def test_request_can_pin_model(build_orchestrator, generator):
    orchestrator = build_orchestrator()

    response = await orchestrator.process_query(make_request(provider_id="gemini", model_id="gemini-1.5-pro"))

    assert generator.calls[0]["provider_id"] == "gemini"
    assert generator.calls[0]["model_id"] == "gemini-1.5-pro"
    assert response.prompt_details.model_id == "gemini-1.5-pro"


@pytest.mark.asyncio
async def test_cost_priority_selects_cheaper_model(build_orchestrator, generator, monkeypatch):
    clock = FakeClock()
    registry = ModelCapabilityRegistry(models=[
        make_option("openai", "gpt-4", 0.03, 5000, 0.95, quality=QualityTier.HIGH),
        make_option("openai", "gpt-3.5-turbo", 0.002, 2000, 0.85, quality=QualityTier.MEDIUM),
    ], clock=clock)
    selector = ModelSelector(
        registry=registry,
        tracker=PerformanceTracker(registry, clock=clock),
        availability=ProviderAvailabilityTracker(clock=clock)
    )
    monkeypatch.setattr(settings, "default_selection_priority", "cost")
    orchestrator = build_orchestrator(model_selector=selector)

    response = await orchestrator.process_query(make_request())

    assert response.success is True
    assert generator.calls[0]["model_id"] == "gpt-3.5-turbo"
    assert response.prompt_details.provider_id == "openai"
    assert selector.tracker.sample_count("openai", "gpt-3.5-turbo") == 1
