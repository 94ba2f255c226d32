import asyncio

import pytest

from conftest import SALES_SCHEMA, FakeClock, FakeExecutor, FakeGenerator
from agents.analysis_agent import IntelligenceAnalysisAgent, IntentAnalysisAgent, KeywordQueryAnalyzer
from agents.base import AgentContext, CancellationToken
from agents.executor_agent import ExecutorAgent
from agents.optimizer_agent import OptimizerAgent, SqlParseOptimizer
from agents.sql_generator import SQLGeneratorAgent
from agents.validator_agent import SelectOnlyValidator, ValidatorAgent
from models.requests import QueryOptions
from models.responses import ExecutionResult
from models.schema import SchemaSnapshot, TableInfo
from models.selection import QueryComplexity
from services.exceptions import ExecutionFailure, GenerationFailure, QueryCancelledError, ValidationFailure
from services.interfaces import SqlExecutor, SqlOptimizer
from services.model_registry import ModelCapabilityRegistry
from services.model_selector import ModelSelector
from services.performance_tracker import PerformanceTracker, ProviderAvailabilityTracker


def make_context(question="Show total revenue by country", token=None):
    return AgentContext(
        query_id="q1",
        user_id="u1",
        question=question,
        cancel_token=token or CancellationToken()
    )


class SlowExecutor(SqlExecutor):
    async def execute_sql(self, sql, options=None):
        await asyncio.sleep(5)


class ExplodingExecutor(SqlExecutor):
    async def execute_sql(self, sql, options=None):
        raise RuntimeError("Catalog Error: Column with name amount not found")


class ExplodingOptimizer(SqlOptimizer):
    async def optimize_sql(self, sql, schema):
        raise RuntimeError("optimizer offline")


@pytest.mark.asyncio
async def test_generator_agent_uses_selected_model(selector):
    generator = FakeGenerator()
    agent = SQLGeneratorAgent(generator, selector)
    context = make_context()

    result = await agent.execute(context, schema=SALES_SCHEMA, complexity=QueryComplexity.MEDIUM)

    call = generator.calls[0]
    assert call["provider_id"] is not None and call["model_id"] is not None
    assert "DATABASE SCHEMA" in call["prompt"]
    assert "main.sales" in call["prompt"]
    assert result.data.prompt_details.template == "basic"
    assert selector.tracker.sample_count(call["provider_id"], call["model_id"]) == 1
    assert context.trace[-1]["agent"] == "SQLGeneratorAgent"


@pytest.mark.asyncio
async def test_provider_error_blacklists_provider(selector):
    generator = FakeGenerator(responses=[RuntimeError("rate limited")])
    agent = SQLGeneratorAgent(generator, selector)

    with pytest.raises(RuntimeError):
        await agent.execute(make_context(), schema=SALES_SCHEMA)

    provider_id = generator.calls[0]["provider_id"]
    assert await selector.is_provider_available(provider_id) is False


@pytest.mark.asyncio
async def test_unparseable_output_raises_generation_failure(selector):
    generator = FakeGenerator(responses=["Sorry, I can't help with that."])
    agent = SQLGeneratorAgent(generator, selector)

    with pytest.raises(GenerationFailure) as excinfo:
        await agent.execute(make_context(), schema=SALES_SCHEMA)

    assert excinfo.value.sql == "Sorry, I can't help with that."
    call = generator.calls[0]
    metrics = await selector.get_model_performance_metrics(call["provider_id"], call["model_id"])
    assert metrics["accuracy"] == 0.0


@pytest.mark.asyncio
async def test_no_suitable_model_uses_generator_default():
    clock = FakeClock()
    registry = ModelCapabilityRegistry(models=[], clock=clock)
    selector = ModelSelector(registry, PerformanceTracker(registry, clock=clock), ProviderAvailabilityTracker(clock=clock))
    generator = FakeGenerator()

    await SQLGeneratorAgent(generator, selector).execute(make_context(), schema=SALES_SCHEMA)

    assert generator.calls[0]["provider_id"] is None


@pytest.mark.asyncio
async def test_fenced_output_is_extracted():
    generator = FakeGenerator(responses=["```sql\nSELECT country FROM sales;\n```"])

    result = await SQLGeneratorAgent(generator).execute(make_context(), schema=SALES_SCHEMA,
                                                        options=QueryOptions(), prompt="x" * 120)

    assert result.data.sql == "SELECT country FROM sales"
    assert result.data.prompt_details.template == "enhanced"


@pytest.mark.asyncio
async def test_cancelled_token_stops_agent():
    token = CancellationToken()
    token.cancel()
    generator = FakeGenerator()

    with pytest.raises(QueryCancelledError):
        await SQLGeneratorAgent(generator).execute(make_context(token=token), schema=SALES_SCHEMA)

    assert generator.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("sql, allowed", [
    ("SELECT * FROM sales", True),
    ("WITH t AS (SELECT 1 AS x) SELECT x FROM t", True),
    ("DELETE FROM sales", False),
    ("SELECT 1; DROP TABLE sales", False),
    ("", False),
])
async def test_select_only_validator(sql, allowed):
    assert await SelectOnlyValidator().validate_sql(sql) is allowed


@pytest.mark.asyncio
async def test_validator_blocks_listed_tables():
    validator = SelectOnlyValidator(blocked_tables=["Payroll"])

    assert await validator.validate_sql("SELECT * FROM payroll") is False
    assert await validator.validate_sql("SELECT * FROM sales") is True


@pytest.mark.asyncio
async def test_validator_agent_raises_with_sql():
    agent = ValidatorAgent(SelectOnlyValidator())

    with pytest.raises(ValidationFailure) as excinfo:
        await agent.execute(make_context(), sql="UPDATE sales SET revenue = 0")

    assert excinfo.value.sql == "UPDATE sales SET revenue = 0"


@pytest.mark.asyncio
async def test_executor_timeout():
    agent = ExecutorAgent(SlowExecutor(), timeout_seconds=0.05)

    with pytest.raises(ExecutionFailure) as excinfo:
        await agent.execute(make_context(), sql="SELECT 1")

    assert "timeout" in excinfo.value.message
    assert excinfo.value.sql == "SELECT 1"


@pytest.mark.asyncio
async def test_executor_errors_are_made_readable():
    with pytest.raises(ExecutionFailure) as excinfo:
        await ExecutorAgent(ExplodingExecutor()).execute(make_context(), sql="SELECT amount FROM sales")

    assert excinfo.value.message == "The query references a column that doesn't exist. Please check column names."


@pytest.mark.asyncio
async def test_executor_returns_rows():
    result = await ExecutorAgent(FakeExecutor()).execute(make_context(), sql="SELECT 1")

    assert isinstance(result.data, ExecutionResult)
    assert result.data.row_count == 2


@pytest.mark.asyncio
async def test_optimizer_adds_row_limit():
    result = await SqlParseOptimizer(max_rows=500).optimize_sql("SELECT id FROM orders", SchemaSnapshot())

    assert result.optimized_sql == "SELECT id FROM orders LIMIT 500"
    assert result.confidence == pytest.approx(0.85)


@pytest.mark.asyncio
async def test_optimizer_reformat_only():
    result = await SqlParseOptimizer().optimize_sql("select id from orders limit 5 -- newest", SchemaSnapshot())

    assert result.optimized_sql == "SELECT id FROM orders LIMIT 5"
    assert result.confidence == pytest.approx(0.95)


@pytest.mark.asyncio
async def test_optimizer_keeps_whitespace_inside_literals():
    sql = "select id from notes where note = 'a  b\nc' limit 5"

    result = await SqlParseOptimizer().optimize_sql(sql, SchemaSnapshot())

    assert result.optimized_sql == "SELECT id FROM notes WHERE note = 'a  b\nc' LIMIT 5"
    assert result.confidence == pytest.approx(0.95)


@pytest.mark.asyncio
async def test_optimizer_ignores_layout_only_differences():
    sql = "SELECT id\nFROM notes\nWHERE note = 'x  y'\nLIMIT 5"

    result = await SqlParseOptimizer().optimize_sql(sql, SchemaSnapshot())

    assert result.optimized_sql == sql
    assert result.confidence == 0.0


@pytest.mark.asyncio
async def test_optimizer_leaves_clean_sql_alone():
    sql = "SELECT id FROM orders LIMIT 5"

    result = await SqlParseOptimizer().optimize_sql(sql, SchemaSnapshot())

    assert result.optimized_sql == sql
    assert result.confidence == 0.0


@pytest.mark.asyncio
async def test_optimizer_agent_survives_collaborator_error():
    result = await OptimizerAgent(ExplodingOptimizer()).execute(make_context(), sql="SELECT 1")

    assert result.data.optimized_sql == "SELECT 1"
    assert result.data.confidence == 0.0


@pytest.mark.asyncio
async def test_intent_analysis():
    context = make_context()

    result = await IntentAnalysisAgent(KeywordQueryAnalyzer()).execute(context)

    assert result.data["intent_type"] == "aggregation"
    assert result.data["domain"] == "sales"
    assert result.confidence == pytest.approx(0.9)


@pytest.mark.asyncio
@pytest.mark.parametrize("question, schema, complexity", [
    ("List the countries", SALES_SCHEMA, QueryComplexity.SIMPLE),
    ("Show total revenue by country", SALES_SCHEMA, QueryComplexity.MEDIUM),
    ("Compare total revenue by country year over year",
     SchemaSnapshot(tables=[TableInfo(name="orders"), TableInfo(name="regions")]), QueryComplexity.COMPLEX),
    ("Rolling total revenue share of each region year over year",
     SchemaSnapshot(tables=[TableInfo(name="orders"), TableInfo(name="regions")]), QueryComplexity.VERY_COMPLEX),
])
async def test_intelligence_analysis_rates_complexity(question, schema, complexity):
    context = make_context(question)

    result = await IntelligenceAnalysisAgent(KeywordQueryAnalyzer()).execute(context, schema=schema)

    assert result.data["complexity"] == complexity
    assert context.metadata["complexity"] == complexity.value
