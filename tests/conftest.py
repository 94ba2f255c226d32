from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from agents.base import CancellationToken
from models.requests import BusinessProfile, EnhancedContext, QueryOptions
from models.responses import ExecutionResult, OptimizationResult, QueryStreamEvent
from models.schema import (
    BusinessColumn, BusinessTable, ColumnInfo, ContextualSchema, SchemaSnapshot, TableInfo
)
from models.selection import ModelCapabilities, ModelOption, QualityTier
from services.cache_service import QueryCacheService
from services.interfaces import (
    ProgressNotifier, QueryEventPublisher, SchemaProvider, SettingsProvider,
    SqlExecutor, SqlGenerator, SqlOptimizer, SqlValidator
)
from services.model_registry import ModelCapabilityRegistry
from services.model_selector import ModelSelector
from services.performance_tracker import PerformanceTracker, ProviderAvailabilityTracker
from services.query_orchestrator import QueryOrchestrator
from services.semantic_cache import SemanticCacheService


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


SALES_SCHEMA = SchemaSnapshot(tables=[
    TableInfo(
        name="sales",
        schema_name="main",
        columns=[
            ColumnInfo(name="id", data_type="bigint", is_nullable=False, is_primary_key=True),
            ColumnInfo(name="country", data_type="varchar"),
            ColumnInfo(name="revenue", data_type="decimal(18,2)"),
        ]
    )
])

REVENUE_SQL = "SELECT country, SUM(revenue) AS total_revenue FROM sales GROUP BY country"


class FakeGenerator(SqlGenerator):
    """Returns queued responses (or raises queued exceptions) and records every call"""

    def __init__(self, responses: Optional[List] = None, confidence: float = 0.9):
        self.responses = list(responses or [])
        self.confidence = confidence
        self.calls: List[Dict] = []

    def _next(self):
        if self.responses:
            item = self.responses.pop(0)
        else:
            item = REVENUE_SQL
        if isinstance(item, Exception):
            raise item
        return item

    async def generate_sql(self, prompt: str, schema: SchemaSnapshot) -> Tuple[str, float]:
        self.calls.append({"prompt": prompt, "schema": schema, "provider_id": None, "model_id": None})
        return self._next(), self.confidence

    async def generate_sql_with_model(self, prompt, schema, provider_id, model_id):
        self.calls.append({"prompt": prompt, "schema": schema, "provider_id": provider_id, "model_id": model_id})
        return self._next(), self.confidence


class FakeSchemaProvider(SchemaProvider):
    def __init__(self, schema: SchemaSnapshot = SALES_SCHEMA, error: Optional[Exception] = None):
        self.schema = schema
        self.error = error
        self.calls = 0

    async def get_relevant_schema(self, question: str) -> SchemaSnapshot:
        self.calls += 1
        if self.error:
            raise self.error
        return self.schema


class FakeValidator(SqlValidator):
    def __init__(self, valid: bool = True):
        self.valid = valid
        self.calls: List[str] = []

    async def validate_sql(self, sql: str) -> bool:
        self.calls.append(sql)
        return self.valid


class FakeExecutor(SqlExecutor):
    def __init__(self, result: Optional[ExecutionResult] = None):
        self.result = result or ExecutionResult(
            success=True,
            columns=["country", "total_revenue"],
            data=[{"country": "US", "total_revenue": 1200.0}, {"country": "DE", "total_revenue": 800.0}],
            row_count=2,
            execution_time_ms=3.0
        )
        self.calls: List[str] = []

    async def execute_sql(self, sql: str, options: Optional[QueryOptions] = None) -> ExecutionResult:
        self.calls.append(sql)
        return self.result


class FakeOptimizer(SqlOptimizer):
    def __init__(self, confidence: float = 0.0, suffix: str = ""):
        self.confidence = confidence
        self.suffix = suffix

    async def optimize_sql(self, sql: str, schema: SchemaSnapshot) -> OptimizationResult:
        return OptimizationResult(original_sql=sql, optimized_sql=sql + self.suffix, confidence=self.confidence)


class RecordingNotifier(ProgressNotifier):
    def __init__(self, fail: bool = False):
        self.updates: List[Tuple[str, int]] = []
        self.fail = fail
        self.on_update = None

    async def notify_progress(self, user_id, query_id, stage, message, percent):
        self.updates.append((stage, percent))
        if self.on_update:
            self.on_update(stage, percent)
        if self.fail:
            raise RuntimeError("observer disconnected")

    @property
    def percents(self) -> List[int]:
        return [percent for _, percent in self.updates]

    @property
    def stages(self) -> List[str]:
        return [stage for stage, _ in self.updates]


class FakeSettingsProvider(SettingsProvider):
    def __init__(self, **flags):
        self.flags = {"EnableQueryCaching": True, "EnableEnhancedSemanticCache": True}
        self.flags.update(flags)

    async def get_boolean_setting(self, name: str) -> bool:
        return self.flags.get(name, False)


class RecordingPublisher(QueryEventPublisher):
    def __init__(self, fail: bool = False):
        self.events: List[QueryStreamEvent] = []
        self.fail = fail

    async def publish(self, event: QueryStreamEvent):
        if self.fail:
            raise RuntimeError("stream unavailable")
        self.events.append(event)


def make_option(provider_id, model_id, cost, duration_ms, accuracy,
                quality=QualityTier.MEDIUM, available=True) -> ModelOption:
    return ModelOption(
        provider_id=provider_id,
        model_id=model_id,
        estimated_cost=cost,
        estimated_duration_ms=duration_ms,
        accuracy_score=accuracy,
        is_available=available,
        capabilities=ModelCapabilities(quality=quality)
    )


def make_enhanced_context(confidence: float = 0.8, prompt: Optional[str] = None,
                          tables: Optional[List[BusinessTable]] = None) -> EnhancedContext:
    if prompt is None:
        prompt = (
            "You are generating SQL for the sales domain. Use table main.sales with columns "
            "country (text) and revenue (currency). Question: show total revenue by country."
        )
    if tables is None:
        tables = [BusinessTable(
            table_name="sales",
            schema_name="main",
            business_purpose="Completed orders",
            columns=[
                BusinessColumn(column_name="id", business_data_type="integer", is_key_column=True),
                BusinessColumn(column_name="country", business_data_type="text"),
                BusinessColumn(column_name="revenue", business_data_type="currency"),
            ]
        )]
    return EnhancedContext(
        business_profile=BusinessProfile(intent_type="aggregation", confidence_score=confidence),
        schema_metadata=ContextualSchema(relevant_tables=tables),
        enhanced_prompt=prompt
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return ModelCapabilityRegistry(clock=clock)


@pytest.fixture
def selector(registry, clock):
    return ModelSelector(
        registry=registry,
        tracker=PerformanceTracker(registry, clock=clock),
        availability=ProviderAvailabilityTracker(clock=clock)
    )


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def build_orchestrator(generator, executor, notifier, publisher, selector):
    """Factory so tests can swap single collaborators"""

    def _build(**overrides):
        parts = dict(
            sql_generator=generator,
            schema_provider=FakeSchemaProvider(),
            sql_validator=FakeValidator(),
            sql_executor=executor,
            progress_notifier=notifier,
            settings_provider=FakeSettingsProvider(),
            semantic_cache=SemanticCacheService(),
            exact_cache=QueryCacheService(redis_url=""),
            sql_optimizer=FakeOptimizer(),
            event_publisher=publisher,
            model_selector=selector,
        )
        parts.update(overrides)
        return QueryOrchestrator(**parts)

    return _build


@pytest.fixture
def cancel_token():
    return CancellationToken()
