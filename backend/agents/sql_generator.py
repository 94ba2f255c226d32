# NL to SQL translation
# agents/sql_generator.py
"""
NL-to-SQL translation agent.
Picks the model through the selector, calls the generator pinned to it and
feeds the observed outcome back into the performance history.
"""

from typing import Optional, Tuple
from datetime import timedelta
import time
from agents.base import BaseAgent, AgentContext, AgentResult
from models.requests import QueryOptions
from models.responses import GenerationResult, PromptDetails
from models.schema import SchemaSnapshot
from models.selection import ModelSelectionCriteria, QueryComplexity, SelectionPriority
from services.exceptions import GenerationFailure, NoSuitableModelError, PipelineError
from services.interfaces import SqlGenerator
from services.model_selector import ModelSelector
from utils.config import settings
from utils.metrics import PROVIDER_OUTCOMES
from utils.sql import extract_sql_from_response


class SQLGeneratorAgent(BaseAgent):
    """
    Translates natural language to SQL using the selected model.
    A provider error blacklists that provider for the cooldown and propagates.
    """

    def __init__(self, generator: SqlGenerator, selector: Optional[ModelSelector] = None,
                 provider_cooldown: Optional[timedelta] = None):
        super().__init__("SQLGeneratorAgent")
        self.generator = generator
        self.selector = selector
        self.provider_cooldown = provider_cooldown or timedelta(seconds=settings.provider_cooldown_seconds)

    async def process(self, context: AgentContext, **kwargs) -> AgentResult:
        schema: SchemaSnapshot = kwargs["schema"]
        options: QueryOptions = kwargs.get("options") or QueryOptions()
        complexity: QueryComplexity = kwargs.get("complexity") or QueryComplexity.MEDIUM
        prompt = kwargs.get("prompt")
        template = "enhanced" if prompt else "basic"
        if not prompt:
            prompt = self.build_prompt(context.question, schema)

        provider_id, model_id, estimated_cost = await self._choose_model(options, complexity)

        start = time.perf_counter()
        try:
            if provider_id and model_id:
                raw, confidence = await self.generator.generate_sql_with_model(prompt, schema, provider_id, model_id)
            else:
                raw, confidence = await self.generator.generate_sql(prompt, schema)
        except PipelineError:
            raise
        except Exception as e:
            if provider_id:
                PROVIDER_OUTCOMES.labels(provider=provider_id, status="error").inc()
                if self.selector is not None:
                    await self.selector.mark_provider_unavailable(provider_id, self.provider_cooldown)
            self.logger.error("Provider call failed",
                            query_id=context.query_id,
                            provider_id=provider_id,
                            model_id=model_id,
                            error=str(e))
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000

        sql = extract_sql_from_response(raw)

        if provider_id and model_id:
            PROVIDER_OUTCOMES.labels(provider=provider_id, status="success").inc()
            if self.selector is not None:
                await self.selector.track_model_performance(
                    provider_id, model_id, elapsed_ms, estimated_cost,
                    confidence if sql else 0.0
                )

        if not sql:
            raise GenerationFailure("Failed to generate valid SQL", sql=(raw or "").strip())

        details = PromptDetails(
            prompt=prompt,
            template=template,
            provider_id=provider_id,
            model_id=model_id,
            token_estimate=len(prompt) // 4
        )
        result = GenerationResult(
            sql=sql,
            success=True,
            confidence=confidence,
            prompt_details=details,
            elapsed_ms=elapsed_ms
        )

        return AgentResult(success=True, data=result, confidence=result.confidence)

    async def _choose_model(self, options: QueryOptions,
                            complexity: QueryComplexity) -> Tuple[Optional[str], Optional[str], float]:
        """Request override first, then the selector; (None, None) means the generator decides"""

        if options.provider_id and options.model_id:
            return options.provider_id, options.model_id, 0.0

        if self.selector is None:
            return None, None, 0.0

        criteria = ModelSelectionCriteria(
            priority=SelectionPriority.parse(settings.default_selection_priority),
            max_cost=settings.default_max_cost,
            max_duration_ms=settings.default_max_duration_ms,
            min_accuracy=settings.default_min_accuracy,
            query_complexity=complexity
        )
        try:
            selection = await self.selector.select_optimal_model(criteria)
        except NoSuitableModelError as e:
            self.logger.warning("No model available, using generator default", error=str(e))
            return None, None, 0.0

        return selection.provider_id, selection.selected_model, selection.estimated_cost

    def build_prompt(self, question: str, schema: SchemaSnapshot) -> str:
        """
        Basic-path prompt with schema context and examples.
        """

        schema_str = self._format_schema(schema)
        table_name = schema.tables[0].qualified_name if schema.tables else "table_name"

        return f"""You are a SQL expert. Generate a SQL query for the following request.

DATABASE SCHEMA:
{schema_str}

RULES:
1. Generate ONLY a SELECT statement
2. Use ONLY the tables and columns that exist in the schema
3. Be precise with column names
4. Include appropriate JOINs if multiple tables are needed
5. Return ONLY the SQL query, no explanations

EXAMPLES:
Request: "Show me total sales by category"
SQL: SELECT category, SUM(sales_amount) AS total_sales FROM {table_name} GROUP BY category ORDER BY total_sales DESC;

Request: "What are the top 5 products?"
SQL: SELECT product_name, COUNT(*) AS count FROM {table_name} GROUP BY product_name ORDER BY count DESC LIMIT 5;

USER REQUEST: {question}

SQL:"""

    def _format_schema(self, schema: SchemaSnapshot) -> str:
        """Formats schema information for LLM consumption"""
        if not schema.tables:
            return "No schema information available."

        lines = []
        for table in schema.tables:
            lines.append(f"Table: {table.qualified_name}")
            if table.description:
                lines.append(f"  Purpose: {table.description}")
            lines.append("Columns:")
            for col in table.columns:
                nullable = "NULL" if col.is_nullable else "NOT NULL"
                col_line = f"  - {col.name} ({col.data_type}) {nullable}"
                if col.is_primary_key:
                    col_line += " [PK]"
                if col.is_foreign_key:
                    col_line += " [FK]"
                if col.description:
                    col_line += f" -- {col.description}"
                lines.append(col_line)
            lines.append("")

        return '\n'.join(lines).rstrip()
