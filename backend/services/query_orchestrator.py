# Query pipeline orchestration
# services/query_orchestrator.py
"""
Master orchestrator driving one natural language question to an executed query.
Requests with a usable enhanced context skip the analysis stages; everything else,
and any enhanced run that breaks unexpectedly, goes through the basic path.
Both paths finish in the same optimization/validation/execution tail.
"""

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional
import structlog
from agents.analysis_agent import IntelligenceAnalysisAgent, IntentAnalysisAgent, KeywordQueryAnalyzer
from agents.base import AgentContext, CancellationToken
from agents.executor_agent import ExecutorAgent
from agents.optimizer_agent import OptimizerAgent, SqlParseOptimizer
from agents.sql_generator import SQLGeneratorAgent
from agents.validator_agent import ValidatorAgent
from models.pipeline import QueryStage
from models.requests import QueryRequest
from models.responses import (
    ExecutionResult, GenerationResult, OptimizationResult, ProcessingPath,
    QueryResponse, QueryStreamEvent
)
from models.schema import SchemaSnapshot
from models.selection import QueryComplexity
from services.cache_coordinator import CacheCoordinator
from services.exceptions import (
    ExecutionFailure, GenerationFailure, QueryCancelledError, ValidationFailure
)
from services.interfaces import (
    ExactCache, ProgressNotifier, QueryAnalyzer, QueryEventPublisher, SchemaProvider,
    SemanticCache, SettingsProvider, SqlExecutor, SqlGenerator, SqlOptimizer, SqlValidator
)
from services.model_selector import ModelSelector
from services.progress_notifier import ProgressReporter
from services.query_context import (
    EnhancedPlan, complexity_for_profile, convert_contextual_schema, resolve_query_context
)
from utils.config import settings
from utils.metrics import QUERY_COUNT, QUERY_DURATION


logger = structlog.get_logger()

MODELED_FAILURES = (GenerationFailure, ValidationFailure, ExecutionFailure)

FAILURE_SUGGESTIONS = {
    GenerationFailure: [
        "Try rephrasing your question with specific table or column names",
        "Break complex questions into smaller ones",
    ],
    ValidationFailure: [
        "Only read-only questions can be answered",
        "Ask for data to be shown rather than changed",
    ],
    ExecutionFailure: [
        "Check that the tables and columns you mention exist",
        "Narrow the date range or add filters",
    ],
}


@dataclass
class EnhancedOutcome:
    """Either a terminal response or the reason to restart on the basic path"""
    response: Optional[QueryResponse] = None
    fallback_reason: Optional[str] = None


@dataclass
class QueryRun:
    """Mutable state of one attempt at a query"""
    request: QueryRequest
    context: AgentContext
    reporter: ProgressReporter
    started: float
    path: ProcessingPath
    fallback_reason: Optional[str] = None

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)


class QueryOrchestrator:
    """
    Coordinates the agent pipeline for one query at a time; safe to share
    between concurrent requests since per-query state lives in QueryRun.
    """

    def __init__(
        self,
        sql_generator: SqlGenerator,
        schema_provider: SchemaProvider,
        sql_validator: SqlValidator,
        sql_executor: SqlExecutor,
        progress_notifier: ProgressNotifier,
        settings_provider: SettingsProvider,
        semantic_cache: Optional[SemanticCache] = None,
        exact_cache: Optional[ExactCache] = None,
        query_analyzer: Optional[QueryAnalyzer] = None,
        sql_optimizer: Optional[SqlOptimizer] = None,
        event_publisher: Optional[QueryEventPublisher] = None,
        model_selector: Optional[ModelSelector] = None,
        optimization_threshold: Optional[float] = None
    ):
        self.schema_provider = schema_provider
        self.progress_notifier = progress_notifier
        self.event_publisher = event_publisher
        self.model_selector = model_selector
        self.optimization_threshold = (
            optimization_threshold if optimization_threshold is not None
            else settings.optimization_confidence_threshold
        )

        self.cache = CacheCoordinator(settings_provider, semantic_cache, exact_cache)

        analyzer = query_analyzer or KeywordQueryAnalyzer()
        self.intent_agent = IntentAnalysisAgent(analyzer)
        self.intelligence_agent = IntelligenceAnalysisAgent(analyzer)
        self.sql_generator = SQLGeneratorAgent(sql_generator, model_selector)
        self.optimizer = OptimizerAgent(sql_optimizer or SqlParseOptimizer())
        self.validator = ValidatorAgent(sql_validator)
        self.executor = ExecutorAgent(sql_executor)

        self.logger = logger.bind(component="QueryOrchestrator")

    async def process_query(
        self,
        request: QueryRequest,
        cancel_token: Optional[CancellationToken] = None
    ) -> QueryResponse:
        """
        Always returns a response. Only host-level task cancellation escapes.
        """
        query_id = str(uuid.uuid4())
        context = AgentContext(
            query_id=query_id,
            user_id=request.user_id,
            question=request.question,
            session_id=request.session_id,
            cancel_token=cancel_token or CancellationToken()
        )
        reporter = ProgressReporter(self.progress_notifier, request.user_id, query_id)
        started = time.perf_counter()

        self.logger.info("Starting query processing",
                        query_id=query_id,
                        user_id=request.user_id,
                        question=request.question[:100])

        run = QueryRun(request, context, reporter, started, ProcessingPath.BASIC)

        try:
            plan = resolve_query_context(request)

            if isinstance(plan, EnhancedPlan):
                run.path = ProcessingPath.ENHANCED
                outcome = await self._run_enhanced(run, plan)
                if outcome.response is not None:
                    return outcome.response

                self.logger.warning("Falling back to basic processing",
                                  query_id=query_id,
                                  reason=outcome.fallback_reason)
                run = QueryRun(request, context, reporter, started, ProcessingPath.BASIC,
                               fallback_reason=outcome.fallback_reason)
            else:
                if request.enhanced_context is not None:
                    run.fallback_reason = plan.reason
                self.logger.debug("Using basic processing", query_id=query_id, reason=plan.reason)

            return await self._run_basic(run)

        except QueryCancelledError as e:
            self.logger.info("Query cancelled", query_id=query_id, stage=e.stage)
            return await self._fail(run, e.message, sql="", status="cancelled")

        except Exception as e:
            self.logger.error("Pipeline failed",
                            query_id=query_id,
                            error=str(e),
                            exc_info=True)
            return await self._fail(run, "An unexpected error occurred. Please try again.", sql="")

    # Paths

    async def _run_enhanced(self, run: QueryRun, plan: EnhancedPlan) -> EnhancedOutcome:
        """Unexpected errors become a fallback reason; modeled failures stay terminal"""
        try:
            cached = await self._cache_check(run)
            if cached is not None:
                return EnhancedOutcome(response=cached)

            await self._enter(run, QueryStage.SCHEMA_CONVERSION, "Converting business schema", 20)
            schema = convert_contextual_schema(plan.schema)

            await self._enter(run, QueryStage.SQL_GENERATION, "Generating SQL from enhanced context", 40)
            generation = await self._generate(run, schema, complexity_for_profile(plan.profile), plan.prompt)

            return EnhancedOutcome(response=await self._complete(run, generation, schema))

        except MODELED_FAILURES as e:
            return EnhancedOutcome(response=await self._fail(run, e.message, sql=e.sql, error_type=type(e)))
        except QueryCancelledError:
            raise
        except Exception as e:
            self.logger.warning("Enhanced processing failed",
                              query_id=run.context.query_id,
                              error=str(e),
                              error_type=type(e).__name__)
            return EnhancedOutcome(fallback_reason=f"Enhanced processing failed: {e}")

    async def _run_basic(self, run: QueryRun) -> QueryResponse:
        try:
            cached = await self._cache_check(run)
            if cached is not None:
                return cached

            await self._enter(run, QueryStage.INTENT_ANALYSIS, "Analyzing question intent", 10)
            await self.intent_agent.execute(run.context)

            await self._enter(run, QueryStage.SCHEMA_RETRIEVAL, "Retrieving relevant schema", 20)
            schema = await self.schema_provider.get_relevant_schema(run.request.question)

            await self._enter(run, QueryStage.INTELLIGENCE_ANALYSIS, "Assessing query complexity", 25)
            analysis = await self.intelligence_agent.execute(run.context, schema=schema)
            complexity = analysis.data.get("complexity", QueryComplexity.MEDIUM)

            await self._enter(run, QueryStage.SQL_GENERATION, "Generating SQL", 40)
            generation = await self._generate(run, schema, complexity, None)

            return await self._complete(run, generation, schema)

        except MODELED_FAILURES as e:
            return await self._fail(run, e.message, sql=e.sql, error_type=type(e))

    # Stages

    async def _enter(self, run: QueryRun, stage: QueryStage, message: str, percent: int):
        run.context.cancel_token.raise_if_cancelled(stage.value)
        await run.reporter.report(stage, message, percent)

    async def _cache_check(self, run: QueryRun) -> Optional[QueryResponse]:
        await self._enter(run, QueryStage.CACHE_CHECK, "Checking cache", 5)

        cached = await self.cache.lookup(run.request)
        if cached is None:
            return None

        response = cached.as_cache_hit(run.context.query_id)
        await run.reporter.report(QueryStage.COMPLETE, "Returned cached result", 100)
        self._record(run, response, status="cache_hit")
        return response

    async def _generate(self, run: QueryRun, schema: SchemaSnapshot,
                        complexity: QueryComplexity, prompt: Optional[str]) -> GenerationResult:
        result = await self.sql_generator.execute(
            run.context,
            schema=schema,
            options=run.request.options,
            complexity=complexity,
            prompt=prompt
        )
        return result.data

    async def _complete(self, run: QueryRun, generation: GenerationResult,
                        schema: SchemaSnapshot) -> QueryResponse:
        """Shared tail: optimize, validate, execute, respond, publish, cache, log"""

        await self._enter(run, QueryStage.SQL_OPTIMIZATION, "Optimizing SQL", 50)
        optimization: OptimizationResult = (
            await self.optimizer.execute(run.context, sql=generation.sql, schema=schema)
        ).data
        final_sql = self._choose_sql(generation.sql, optimization)

        await self._enter(run, QueryStage.SQL_VALIDATION, "Validating SQL", 65)
        await self.validator.execute(run.context, sql=final_sql)

        await self._enter(run, QueryStage.SQL_EXECUTION, "Executing query", 70)
        execution: ExecutionResult = (
            await self.executor.execute(run.context, sql=final_sql, options=run.request.options)
        ).data

        await self._enter(run, QueryStage.RESPONSE_BUILD, "Building response", 90)
        response = QueryResponse(
            query_id=run.context.query_id,
            user_id=run.request.user_id,
            question=run.request.question,
            success=True,
            sql=final_sql,
            result=execution,
            confidence=generation.confidence,
            execution_time_ms=run.elapsed_ms,
            prompt_details=generation.prompt_details,
            processing_path=run.path,
            fallback_reason=run.fallback_reason
        )

        await self._enter(run, QueryStage.STREAMING_NOTIFY, "Publishing query event", 92)
        await self._publish(response, optimization, final_sql != generation.sql)

        run.context.add_trace("QueryOrchestrator", QueryStage.CACHE_WRITE.value, {})
        written = await self.cache.store(run.request, response)

        run.context.add_trace("QueryOrchestrator", QueryStage.LOGGED.value, {"caches_written": written})
        self._record(run, response, status="success")

        await run.reporter.report(QueryStage.COMPLETE, "Query completed", 100)
        return response

    def _choose_sql(self, generated_sql: str, optimization: OptimizationResult) -> str:
        if optimization.optimized_sql and optimization.confidence > self.optimization_threshold:
            return optimization.optimized_sql
        return generated_sql

    async def _publish(self, response: QueryResponse, optimization: OptimizationResult, applied: bool):
        if self.event_publisher is None:
            return

        event = QueryStreamEvent(
            query_id=response.query_id,
            user_id=response.user_id or "",
            question=response.question or "",
            generated_sql=response.sql,
            success=response.success,
            execution_time_ms=response.execution_time_ms,
            row_count=response.result.row_count if response.result else 0,
            cache_hit=response.cached,
            confidence=response.confidence,
            optimization_score=optimization.confidence,
            optimization_applied=applied
        )
        try:
            await self.event_publisher.publish(event)
        except Exception as e:
            self.logger.warning("Query event publishing failed",
                              query_id=response.query_id,
                              error=str(e))

    # Terminal states

    async def _fail(self, run: QueryRun, message: str, sql: str = "",
                    error_type: Optional[type] = None, status: str = "failure") -> QueryResponse:
        response = QueryResponse(
            query_id=run.context.query_id,
            user_id=run.request.user_id,
            question=run.request.question,
            success=False,
            sql=sql or "",
            confidence=0.0,
            error=message,
            execution_time_ms=run.elapsed_ms,
            processing_path=run.path,
            fallback_reason=run.fallback_reason,
            suggestions=self._suggestions(error_type)
        )

        await run.reporter.report(QueryStage.FAILED, message, run.reporter.highest)
        self._record(run, response, status=status)
        return response

    @staticmethod
    def _suggestions(error_type: Optional[type]) -> List[str]:
        if error_type is None:
            return []
        return list(FAILURE_SUGGESTIONS.get(error_type, []))

    def _record(self, run: QueryRun, response: QueryResponse, status: str):
        """Audit log record and metrics for one finished query"""
        path = "cache" if response.cached else run.path.value

        QUERY_COUNT.labels(path=path, status=status).inc()
        QUERY_DURATION.labels(path=path).observe(time.perf_counter() - run.started)

        self.logger.info("Query processed",
                       query_id=response.query_id,
                       user_id=response.user_id,
                       session_id=run.request.session_id,
                       status=status,
                       path=path,
                       cached=response.cached,
                       fallback_reason=run.fallback_reason,
                       execution_time_ms=run.elapsed_ms,
                       row_count=response.result.row_count if response.result else 0,
                       error=response.error,
                       stages=[entry["agent"] for entry in run.context.trace],
                       logged_at=datetime.now(timezone.utc).isoformat())
