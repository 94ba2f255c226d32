# Model selection models
# models/selection.py
"""Data contracts of the model capability registry and the selector"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from enum import Enum


class SelectionPriority(str, Enum):
    COST = "cost"
    SPEED = "speed"
    ACCURACY = "accuracy"
    AVAILABILITY = "availability"
    BALANCED = "balanced"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SelectionPriority":
        """Unknown or empty priorities fall back to balanced scoring"""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.BALANCED


class QueryComplexity(str, Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"
    VERY_COMPLEX = "very_complex"


class QualityTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ModelCapabilities(BaseModel):
    """Declared capability attributes of a model"""

    max_tokens: int = 4096
    context_window: int = 4096
    quality: QualityTier = QualityTier.MEDIUM
    supports_streaming: bool = True
    supports_functions: bool = False
    extra: Dict[str, Any] = Field(default_factory=dict)

    def describe(self) -> str:
        parts = [
            f"max_tokens={self.max_tokens}",
            f"context_window={self.context_window}",
            f"quality={self.quality.value}",
            f"supports_streaming={self.supports_streaming}",
            f"supports_functions={self.supports_functions}",
        ]
        parts.extend(f"{key}={value}" for key, value in sorted(self.extra.items()))
        return ", ".join(parts)


class ModelOption(BaseModel):
    """
    One (provider, model) pair known to the registry.
    Cost, duration and accuracy are overwritten in place by fresh performance samples.
    """

    provider_id: str
    model_id: str
    estimated_cost: float = 0.0
    estimated_duration_ms: float = 0.0
    accuracy_score: float = 0.0
    is_available: bool = True
    capabilities: ModelCapabilities = Field(default_factory=ModelCapabilities)

    model_config = {"validate_assignment": True, "protected_namespaces": ()}

    @field_validator('accuracy_score')
    @classmethod
    def clamp_accuracy(cls, v):
        return max(0.0, min(1.0, float(v)))

    @property
    def key(self) -> str:
        return model_key(self.provider_id, self.model_id)


class ModelSelectionCriteria(BaseModel):
    """Immutable input to one selection call"""

    priority: SelectionPriority = SelectionPriority.BALANCED
    max_cost: Optional[float] = Field(None, ge=0)
    max_duration_ms: Optional[float] = Field(None, ge=0)
    min_accuracy: float = Field(0.0, ge=0, le=1)
    query_complexity: QueryComplexity = QueryComplexity.MEDIUM

    model_config = {"frozen": True}

    @field_validator('priority', mode='before')
    @classmethod
    def coerce_priority(cls, v):
        if isinstance(v, SelectionPriority):
            return v
        return SelectionPriority.parse(v)


class ModelSelectionResult(BaseModel):
    """Chosen model with ranked alternatives and a human-readable justification"""

    selected_model: str
    provider_id: str
    estimated_cost: float
    estimated_duration_ms: float
    confidence_score: float = Field(ge=0, le=1)
    reasoning: str
    alternative_options: List[ModelOption] = Field(default_factory=list)
    score_breakdown: Dict[str, float] = Field(default_factory=dict)


class PerformanceSample(BaseModel):
    """Single observed outcome for one model key"""

    accuracy: float
    duration_ms: float
    cost: float
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}


def model_key(provider_id: str, model_id: str) -> str:
    return f"{provider_id.lower()}:{model_id.lower()}"
