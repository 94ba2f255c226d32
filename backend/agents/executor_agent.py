# Safe query execution
# agents/executor_agent.py
"""
Query execution agent that runs validated SQL through the executor collaborator.
Handles timeouts and turns database errors into user-friendly ExecutionFailures.
"""

from typing import Optional
import asyncio
from agents.base import BaseAgent, AgentContext, AgentResult
from models.requests import QueryOptions
from models.responses import ExecutionResult
from services.exceptions import ExecutionFailure
from services.interfaces import SqlExecutor
from utils.config import settings


class ExecutorAgent(BaseAgent):
    """
    Executes validated SQL with a per-request timeout.
    """

    def __init__(self, executor: SqlExecutor, timeout_seconds: Optional[int] = None):
        super().__init__("ExecutorAgent")
        self.executor = executor
        self.timeout = timeout_seconds or settings.query_timeout_seconds

    async def process(self, context: AgentContext, **kwargs) -> AgentResult:
        sql = kwargs.get("sql", "")
        options: Optional[QueryOptions] = kwargs.get("options")
        if not sql:
            raise ExecutionFailure("No SQL query provided for execution")

        timeout = (options.timeout_seconds if options and options.timeout_seconds else None) or self.timeout

        try:
            result: ExecutionResult = await asyncio.wait_for(
                self.executor.execute_sql(sql, options),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            raise ExecutionFailure(
                f"Query exceeded timeout limit of {timeout} seconds. Please simplify your query.",
                sql=sql
            )
        except ExecutionFailure:
            raise
        except Exception as e:
            self.logger.error("Query execution failed", error=str(e), sql=sql[:200])
            raise ExecutionFailure(self._format_error_message(str(e)), sql=sql) from e

        if not result.success:
            raise ExecutionFailure(self._format_error_message(result.error or "unknown error"), sql=sql)

        self.logger.info("Query executed successfully",
                       rows_returned=result.row_count,
                       execution_time_ms=result.execution_time_ms)

        return AgentResult(success=True, data=result, confidence=1.0)

    def _format_error_message(self, error: str) -> str:
        """Formats technical errors into user-friendly messages"""

        error_lower = error.lower()

        if "column" in error_lower and "not found" in error_lower:
            return "The query references a column that doesn't exist. Please check column names."

        elif "table" in error_lower and ("not found" in error_lower or "does not exist" in error_lower):
            return "The query references a table that doesn't exist."

        elif "syntax error" in error_lower:
            return "There's a syntax error in the generated SQL. Please try rephrasing your question."

        elif "permission" in error_lower or "access" in error_lower:
            return "You don't have permission to access this data."

        elif "timeout" in error_lower:
            return "The query took too long to execute. Try limiting the data range or simplifying the analysis."

        elif "memory" in error_lower or "resource" in error_lower:
            return "The query requires too many resources. Please try a smaller data range."

        else:
            return f"Query execution failed: {error[:200]}"
