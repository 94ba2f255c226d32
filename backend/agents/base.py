# Base agent interface
# agents/base.py
"""
Base agent interface establishing the contract for all pipeline agents.
Every stage of the query pipeline runs through BaseAgent.execute so logging,
tracing and cancellation behave the same everywhere.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, List
from pydantic import BaseModel, ConfigDict, Field
import asyncio
import structlog
from datetime import datetime, timezone
from services.exceptions import QueryCancelledError


logger = structlog.get_logger()


class CancellationToken:
    """Cooperative cancellation flag checked between pipeline stages"""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: Optional[str] = None):
        if self._event.is_set():
            raise QueryCancelledError(stage)


class AgentContext(BaseModel):
    """
    Per-query state shared by the agents.
    The trace keeps one entry per agent run for auditability.
    """
    query_id: str
    user_id: str
    question: str
    session_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = Field(default_factory=dict)
    trace: List[Dict[str, Any]] = Field(default_factory=list)
    cancel_token: CancellationToken = Field(default_factory=CancellationToken, exclude=True)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def add_trace(self, agent_name: str, action: str, details: Dict[str, Any]):
        """Add audit trail entry"""
        self.trace.append({
            "agent": agent_name,
            "action": action,
            "details": details,
            "timestamp": datetime.now(timezone.utc).isoformat()
        })


class AgentResult(BaseModel):
    """
    Standard result format ensuring consistent agent communication.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    confidence: Optional[float] = None


class BaseAgent(ABC):
    """
    Foundation for all agents with built-in observability.
    Each agent wraps one collaborator and raises PipelineError subclasses
    for failures the orchestrator models as outcomes.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logger.bind(agent=name)

    @abstractmethod
    async def process(self, context: AgentContext, **kwargs) -> AgentResult:
        """
        Core processing logic - must be implemented by each agent.
        """
        pass

    async def execute(self, context: AgentContext, **kwargs) -> AgentResult:
        """
        Wrapper providing consistent logging and tracing.
        Errors are traced and re-raised for the orchestrator to classify.
        """
        context.cancel_token.raise_if_cancelled(self.name)
        start_time = datetime.now(timezone.utc)

        try:
            self.logger.info(f"Starting {self.name} processing",
                           query_id=context.query_id,
                           question=context.question[:100])  # Log truncated question

            result = await self.process(context, **kwargs)

            duration_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000

            self.logger.info(f"Completed {self.name} processing",
                           query_id=context.query_id,
                           success=result.success,
                           duration_ms=duration_ms)

            context.add_trace(
                self.name,
                "completed",
                {
                    "success": result.success,
                    "duration_ms": duration_ms,
                    "confidence": result.confidence
                }
            )

            return result

        except Exception as e:
            self.logger.error(f"Error in {self.name}",
                            query_id=context.query_id,
                            error=str(e),
                            error_type=type(e).__name__)

            context.add_trace(
                self.name,
                "error",
                {"error": str(e), "error_type": type(e).__name__}
            )
            raise
