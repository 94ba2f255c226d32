# Security validation
# agents/validator_agent.py
"""
Security-focused validation agent ensuring only read-only SQL reaches the database.
"""

from typing import List, Optional
from agents.base import BaseAgent, AgentContext, AgentResult
from services.exceptions import ValidationFailure
from services.interfaces import SqlValidator
from utils.sql import is_read_only


class SelectOnlyValidator(SqlValidator):
    """Default validator: a single SELECT/CTE statement with no write keywords"""

    def __init__(self, blocked_tables: Optional[List[str]] = None):
        self.blocked_tables = [t.lower() for t in (blocked_tables or [])]

    async def validate_sql(self, sql: str) -> bool:
        if not sql or not is_read_only(sql):
            return False

        sql_lower = sql.lower()
        return not any(table in sql_lower for table in self.blocked_tables)


class ValidatorAgent(BaseAgent):
    """
    Runs the validator collaborator and turns a rejection into a ValidationFailure
    carrying the rejected SQL.
    """

    def __init__(self, validator: SqlValidator):
        super().__init__("ValidatorAgent")
        self.validator = validator

    async def process(self, context: AgentContext, **kwargs) -> AgentResult:
        sql = kwargs.get("sql", "")
        if not sql:
            raise ValidationFailure("No SQL query provided for validation")

        if not await self.validator.validate_sql(sql):
            raise ValidationFailure(
                "I can only run SELECT queries to analyze your data. "
                "The generated query was rejected by validation.",
                sql=sql
            )

        return AgentResult(success=True, data={"validated_sql": sql}, confidence=1.0)
