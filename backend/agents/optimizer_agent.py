# SQL optimization
# agents/optimizer_agent.py
"""
Optimization agent proposing a rewrite of the generated SQL.
The orchestrator adopts the rewrite only above the configured confidence threshold.
"""

from typing import List, Optional
import re
import sqlparse
from agents.base import BaseAgent, AgentContext, AgentResult
from models.responses import OptimizationResult
from models.schema import SchemaSnapshot
from services.interfaces import SqlOptimizer
from utils.config import settings


class SqlParseOptimizer(SqlOptimizer):
    """
    Default optimizer: strips comments, normalizes keyword case and bounds
    unbounded result sets with a row limit.
    """

    def __init__(self, max_rows: Optional[int] = None):
        self.max_rows = max_rows or settings.max_query_rows

    async def optimize_sql(self, sql: str, schema: SchemaSnapshot) -> OptimizationResult:
        improvements: List[str] = []

        # String literals keep their whitespace; collapsed text is only used for comparison
        formatted = sqlparse.format(sql, strip_comments=True, keyword_case="upper").strip().rstrip(";").strip()
        if self._collapse(formatted) != self._collapse(sql):
            improvements.append("Normalized keywords and removed comments")
        else:
            formatted = sql.strip().rstrip(";").strip()

        if not self._has_row_limit(formatted):
            formatted = f"{formatted} LIMIT {self.max_rows}"
            improvements.append(f"Added row limit of {self.max_rows}")

        if not improvements:
            return OptimizationResult(original_sql=sql, optimized_sql=sql, confidence=0.0)

        # A new row limit can change the result set
        confidence = 0.85 if any(i.startswith("Added row limit") for i in improvements) else 0.95

        return OptimizationResult(
            original_sql=sql,
            optimized_sql=formatted,
            confidence=confidence,
            improvements=improvements
        )

    @staticmethod
    def _collapse(sql: str) -> str:
        return " ".join(sql.split()).rstrip(";").strip()

    @staticmethod
    def _has_row_limit(sql: str) -> bool:
        parsed = sqlparse.parse(sql)
        if not parsed:
            return False

        for token in parsed[0].flatten():
            if token.ttype in sqlparse.tokens.Keyword and token.normalized.upper() in ('LIMIT', 'TOP', 'FETCH'):
                return True

        return bool(re.search(r'\bLIMIT\s+\d+', sql, re.I))


class OptimizerAgent(BaseAgent):
    """
    Runs the optimizer collaborator. Optimization is best-effort: when the
    collaborator fails the generated SQL is kept unchanged.
    """

    def __init__(self, optimizer: SqlOptimizer):
        super().__init__("OptimizerAgent")
        self.optimizer = optimizer

    async def process(self, context: AgentContext, **kwargs) -> AgentResult:
        sql: str = kwargs["sql"]
        schema: SchemaSnapshot = kwargs.get("schema") or SchemaSnapshot()

        try:
            result = await self.optimizer.optimize_sql(sql, schema)
        except Exception as e:
            self.logger.warning("Optimization failed, keeping generated SQL",
                              query_id=context.query_id,
                              error=str(e))
            result = OptimizationResult(original_sql=sql, optimized_sql=sql, confidence=0.0)

        return AgentResult(success=True, data=result, confidence=result.confidence)
