# Collaborator contracts
# services/interfaces.py
"""
Abstract collaborators consumed by the query orchestrator.
Default implementations live in the sibling service modules; tests supply fakes.
"""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple
from models.requests import QueryOptions
from models.responses import ExecutionResult, OptimizationResult, QueryResponse, QueryStreamEvent
from models.schema import SchemaSnapshot


class SqlGenerator(ABC):

    @abstractmethod
    async def generate_sql(self, prompt: str, schema: SchemaSnapshot) -> Tuple[str, float]:
        """Returns (raw model output, confidence)"""

    async def generate_sql_with_model(
        self,
        prompt: str,
        schema: SchemaSnapshot,
        provider_id: str,
        model_id: str
    ) -> Tuple[str, float]:
        """Managed variant pinned to one provider/model; defaults to the unpinned call"""
        return await self.generate_sql(prompt, schema)


class SchemaProvider(ABC):

    @abstractmethod
    async def get_relevant_schema(self, question: str) -> SchemaSnapshot:
        ...


class SqlValidator(ABC):

    @abstractmethod
    async def validate_sql(self, sql: str) -> bool:
        ...


class SqlOptimizer(ABC):

    @abstractmethod
    async def optimize_sql(self, sql: str, schema: SchemaSnapshot) -> OptimizationResult:
        ...


class SqlExecutor(ABC):

    @abstractmethod
    async def execute_sql(self, sql: str, options: Optional[QueryOptions] = None) -> ExecutionResult:
        ...


class QueryAnalyzer(ABC):

    @abstractmethod
    async def analyze_intent(self, question: str) -> Dict[str, Any]:
        """Intent type, domain and confidence for the question"""

    @abstractmethod
    async def analyze_intelligence(self, question: str, schema: SchemaSnapshot) -> Dict[str, Any]:
        """Complexity tier and hints given the relevant schema"""


class ProgressNotifier(ABC):

    @abstractmethod
    async def notify_progress(self, user_id: str, query_id: str, stage: str, message: str, percent: int):
        ...


class QueryEventPublisher(ABC):

    @abstractmethod
    async def publish(self, event: QueryStreamEvent):
        ...


class SettingsProvider(ABC):

    @abstractmethod
    async def get_boolean_setting(self, name: str) -> bool:
        ...


class SemanticCache(ABC):

    @abstractmethod
    async def get_semantic_cache_result(
        self,
        question: str,
        similarity_threshold: float,
        max_results: int
    ) -> Optional[QueryResponse]:
        ...

    @abstractmethod
    async def store_semantic_cache_result(
        self,
        question: str,
        sql: str,
        response: QueryResponse,
        ttl: timedelta
    ):
        ...


class ExactCache(ABC):

    @abstractmethod
    async def get_exact_cache_result(self, key: str) -> Optional[QueryResponse]:
        ...

    @abstractmethod
    async def store_exact_cache_result(self, key: str, response: QueryResponse, ttl: timedelta):
        ...
