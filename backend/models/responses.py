# Pipeline result models
# models/responses.py
"""Stage results and the terminal query response"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from enum import Enum


def _clamp_unit(v: float) -> float:
    return max(0.0, min(1.0, float(v or 0.0)))


class ProcessingPath(str, Enum):
    """Route a response took through the orchestrator"""
    ENHANCED = "enhanced"
    BASIC = "basic"


class PromptDetails(BaseModel):
    """Diagnostic metadata about the prompt used for generation"""

    prompt: str = ""
    template: str = "basic"
    provider_id: Optional[str] = None
    model_id: Optional[str] = None
    token_estimate: int = 0


class GenerationResult(BaseModel):
    """Outcome of one SQL generation attempt"""

    sql: str = ""
    success: bool
    confidence: float = 0.0
    error: Optional[str] = None
    prompt_details: Optional[PromptDetails] = None
    elapsed_ms: float = 0.0

    model_config = {"frozen": True}

    @field_validator('confidence')
    @classmethod
    def clamp_confidence(cls, v):
        return _clamp_unit(v)


class OptimizationResult(BaseModel):
    """Candidate rewrite of the generated SQL"""

    original_sql: str
    optimized_sql: str
    confidence: float = 0.0
    improvements: List[str] = Field(default_factory=list)

    @field_validator('confidence')
    @classmethod
    def clamp_confidence(cls, v):
        return _clamp_unit(v)


class ExecutionResult(BaseModel):
    """Rows returned by the target database"""

    success: bool
    columns: List[str] = Field(default_factory=list)
    data: List[Dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    execution_time_ms: float = 0.0
    error: Optional[str] = None


class QueryResponse(BaseModel):
    """Terminal artifact returned for every processed query"""

    query_id: str
    user_id: Optional[str] = None
    question: Optional[str] = None
    success: bool
    sql: str = ""
    result: Optional[ExecutionResult] = None
    confidence: float = 0.0
    cached: bool = False
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    execution_time_ms: int = 0
    prompt_details: Optional[PromptDetails] = None
    processing_path: ProcessingPath = ProcessingPath.BASIC
    fallback_reason: Optional[str] = None
    suggestions: List[str] = Field(default_factory=list)

    @field_validator('confidence')
    @classmethod
    def clamp_confidence(cls, v):
        return _clamp_unit(v)

    def as_cache_hit(self, query_id: str) -> "QueryResponse":
        """Cached copies are reused verbatim except for identity and the cached flag"""
        return self.model_copy(update={"query_id": query_id, "cached": True})


class QueryStreamEvent(BaseModel):
    """Real-time analytics event emitted after a successful execution"""

    query_id: str
    user_id: str
    question: str
    generated_sql: str
    success: bool
    execution_time_ms: int
    row_count: int = 0
    cache_hit: bool = False
    confidence: float = 0.0
    optimization_score: float = 0.0
    optimization_applied: bool = False
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
