# AI model selection and failover
# services/model_selector.py
"""
Chooses the language model used for SQL generation.
Every available model gets a composite score; the priority of the request
decides how the five score components are weighted.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional
import structlog
from models.selection import (
    ModelCapabilities, ModelOption, ModelSelectionCriteria, ModelSelectionResult,
    QualityTier, QueryComplexity, SelectionPriority
)
from services.exceptions import NoSuitableModelError
from services.model_registry import ModelCapabilityRegistry
from services.performance_tracker import PerformanceTracker, ProviderAvailabilityTracker
from utils.metrics import MODEL_SELECTIONS


logger = structlog.get_logger()


COMPONENTS = ("cost", "speed", "accuracy", "availability", "complexity")

SCORING_WEIGHTS: Dict[SelectionPriority, Dict[str, float]] = {
    SelectionPriority.COST: {
        "cost": 0.5, "speed": 0.2, "accuracy": 0.2, "availability": 0.05, "complexity": 0.05
    },
    SelectionPriority.SPEED: {
        "cost": 0.2, "speed": 0.5, "accuracy": 0.2, "availability": 0.05, "complexity": 0.05
    },
    SelectionPriority.ACCURACY: {
        "cost": 0.1, "speed": 0.2, "accuracy": 0.5, "availability": 0.1, "complexity": 0.1
    },
    SelectionPriority.AVAILABILITY: {
        "cost": 0.1, "speed": 0.2, "accuracy": 0.2, "availability": 0.4, "complexity": 0.1
    },
    SelectionPriority.BALANCED: {
        "cost": 0.25, "speed": 0.25, "accuracy": 0.25, "availability": 0.15, "complexity": 0.10
    },
}

COMPLEXITY_MATCH: Dict[tuple, float] = {
    (QueryComplexity.SIMPLE, QualityTier.HIGH): 0.8,         # Overkill but works
    (QueryComplexity.SIMPLE, QualityTier.MEDIUM): 1.0,
    (QueryComplexity.SIMPLE, QualityTier.LOW): 0.9,
    (QueryComplexity.MEDIUM, QualityTier.HIGH): 0.9,
    (QueryComplexity.MEDIUM, QualityTier.MEDIUM): 1.0,
    (QueryComplexity.MEDIUM, QualityTier.LOW): 0.7,
    (QueryComplexity.COMPLEX, QualityTier.HIGH): 1.0,
    (QueryComplexity.COMPLEX, QualityTier.MEDIUM): 0.8,
    (QueryComplexity.COMPLEX, QualityTier.LOW): 0.5,
    (QueryComplexity.VERY_COMPLEX, QualityTier.HIGH): 1.0,
    (QueryComplexity.VERY_COMPLEX, QualityTier.MEDIUM): 0.6,
    (QueryComplexity.VERY_COMPLEX, QualityTier.LOW): 0.3,
}
DEFAULT_COMPLEXITY_MATCH = 0.7


def inverse_linear_score(value: float, ceiling: float) -> float:
    """
    1.0 at zero, 0.5 at the ceiling, strictly decreasing beyond it.
    A zero ceiling only admits free/instant models.
    """
    if value <= 0:
        return 1.0
    if ceiling <= 0:
        return 0.0
    return ceiling / (ceiling + value)


def complexity_match_score(complexity: QueryComplexity, quality: QualityTier) -> float:
    return COMPLEXITY_MATCH.get((complexity, quality), DEFAULT_COMPLEXITY_MATCH)


@dataclass
class ScoredModel:
    model: ModelOption
    score: float
    components: Dict[str, float]
    contributions: Dict[str, float]


class ModelSelector:
    """
    Owns the registry, the performance history and the provider blacklist,
    and exposes the selection and feedback operations on top of them.
    """

    def __init__(
        self,
        registry: Optional[ModelCapabilityRegistry] = None,
        tracker: Optional[PerformanceTracker] = None,
        availability: Optional[ProviderAvailabilityTracker] = None,
        providers: Optional[Iterable[str]] = None
    ):
        self.registry = registry or ModelCapabilityRegistry()
        self.tracker = tracker or PerformanceTracker(self.registry)
        self.availability = availability or ProviderAvailabilityTracker()
        self.logger = logger.bind(component="ModelSelector")

        # None means every provider of the registry
        self.providers = None if providers is None else [p.lower() for p in providers]
        if self.providers is not None:
            known = {p.lower() for p in self.registry.providers()}
            unknown = [p for p in self.providers if p not in known]
            if unknown:
                self.logger.warning("Configured providers have no registered models", providers=unknown)

    # Selection

    async def select_optimal_model(self, criteria: ModelSelectionCriteria) -> ModelSelectionResult:
        candidates = await self.get_available_models()
        return self._select(candidates, criteria)

    async def select_with_failover(
        self,
        criteria: ModelSelectionCriteria,
        exclude_providers: Iterable[str]
    ) -> ModelSelectionResult:
        """
        Selects among providers not excluded, scoring with availability priority
        so a degraded provider loses ground in every component, not only once.
        """
        excluded = {p.lower() for p in exclude_providers}
        candidates = [
            m for m in await self.get_available_models()
            if m.provider_id.lower() not in excluded
        ]

        if not candidates:
            self.logger.error("No available models after excluding providers",
                            excluded=sorted(excluded))
            raise NoSuitableModelError("No available models after excluding specified providers")

        failover_criteria = criteria.model_copy(update={"priority": SelectionPriority.AVAILABILITY})
        return self._select(candidates, failover_criteria)

    async def get_available_models(self) -> List[ModelOption]:
        self.registry.refresh_if_needed()

        if self.providers is None:
            models = self.registry.all_models()
        else:
            models = [m for p in self.providers for m in self.registry.models_for_provider(p)]

        return [
            model for model in models
            if model.is_available and self.availability.is_available(model.provider_id)
        ]

    def score_model(self, model: ModelOption, criteria: ModelSelectionCriteria,
                    cost_ceiling: Optional[float] = None,
                    duration_ceiling: Optional[float] = None) -> ScoredModel:
        weights = SCORING_WEIGHTS[criteria.priority]

        cost_ceiling = criteria.max_cost if criteria.max_cost is not None else cost_ceiling
        duration_ceiling = criteria.max_duration_ms if criteria.max_duration_ms is not None else duration_ceiling

        components = {
            "cost": inverse_linear_score(model.estimated_cost, cost_ceiling or 0.0),
            "speed": inverse_linear_score(model.estimated_duration_ms, duration_ceiling or 0.0),
            "accuracy": model.accuracy_score if model.accuracy_score >= criteria.min_accuracy else 0.0,
            "availability": 1.0 if model.is_available else 0.0,
            "complexity": complexity_match_score(criteria.query_complexity, model.capabilities.quality),
        }
        contributions = {name: components[name] * weights[name] for name in COMPONENTS}
        score = max(0.0, min(1.0, sum(contributions.values())))

        return ScoredModel(model=model, score=score, components=components, contributions=contributions)

    def _select(self, candidates: List[ModelOption], criteria: ModelSelectionCriteria) -> ModelSelectionResult:
        candidates = [m for m in candidates if m.is_available]
        if not candidates:
            self.logger.error("No suitable model found", priority=criteria.priority.value)
            raise NoSuitableModelError("No suitable model found for the given criteria")

        # Without explicit ceilings the most expensive / slowest candidate is the reference
        cost_ceiling = max(m.estimated_cost for m in candidates)
        duration_ceiling = max(m.estimated_duration_ms for m in candidates)

        ranked = sorted(
            (self.score_model(m, criteria, cost_ceiling, duration_ceiling) for m in candidates),
            key=lambda s: (-s.score, s.model.provider_id, s.model.model_id)
        )
        best = ranked[0]

        result = ModelSelectionResult(
            selected_model=best.model.model_id,
            provider_id=best.model.provider_id,
            estimated_cost=best.model.estimated_cost,
            estimated_duration_ms=best.model.estimated_duration_ms,
            confidence_score=best.score,
            reasoning=self._reasoning(best, criteria),
            alternative_options=[s.model for s in ranked[1:4]],
            score_breakdown=dict(best.contributions)
        )

        MODEL_SELECTIONS.labels(
            provider=result.provider_id,
            model=result.selected_model,
            priority=criteria.priority.value
        ).inc()
        self.logger.info("Selected model",
                       provider_id=result.provider_id,
                       model_id=result.selected_model,
                       score=round(best.score, 4),
                       priority=criteria.priority.value,
                       complexity=criteria.query_complexity.value,
                       candidates=len(ranked))
        return result

    @staticmethod
    def _reasoning(best: ScoredModel, criteria: ModelSelectionCriteria) -> str:
        model = best.model
        reasons = []

        if criteria.priority == SelectionPriority.COST:
            reasons.append(f"Selected for cost optimization (${model.estimated_cost:.4f} per request)")
        elif criteria.priority == SelectionPriority.SPEED:
            reasons.append(f"Selected for speed optimization ({model.estimated_duration_ms:.0f}ms estimated duration)")
        elif criteria.priority == SelectionPriority.ACCURACY:
            reasons.append(f"Selected for accuracy optimization ({model.accuracy_score:.2%} accuracy score)")
        elif criteria.priority == SelectionPriority.AVAILABILITY:
            reasons.append("Selected for availability during provider failover")
        else:
            reasons.append("Selected based on balanced criteria")

        dominant = max(COMPONENTS, key=lambda name: best.contributions[name])
        reasons.append(f"Dominant factor: {dominant} ({best.contributions[dominant]:.2f})")
        reasons.append(f"Overall score: {best.score:.2f}")
        reasons.append(f"Model capabilities: {model.capabilities.describe()}")

        return ". ".join(reasons)

    # Feedback

    async def track_model_performance(self, provider_id: str, model_id: str,
                                      duration_ms: float, cost: float, accuracy: float):
        try:
            self.tracker.track_outcome(provider_id, model_id, duration_ms, cost, accuracy)
        except Exception as e:
            self.logger.error("Error tracking model performance",
                            provider_id=provider_id,
                            model_id=model_id,
                            error=str(e),
                            exc_info=True)

    async def get_model_performance_metrics(self, provider_id: str, model_id: str) -> Dict[str, float]:
        return self.tracker.get_performance_metrics(provider_id, model_id)

    async def mark_provider_unavailable(self, provider_id: str, duration: timedelta):
        self.availability.mark_unavailable(provider_id, duration)

    async def is_provider_available(self, provider_id: str) -> bool:
        return self.availability.is_available(provider_id)

    # Capabilities & analytics

    async def get_model_info(self, provider_id: str, model_id: str) -> Optional[ModelOption]:
        """Registry entry with accuracy refreshed from the recent metrics window"""
        self.registry.refresh_if_needed()

        metrics = self.tracker.get_performance_metrics(provider_id, model_id)
        if "accuracy" in metrics:
            self.registry.set_accuracy(provider_id, model_id, metrics["accuracy"])

        return self.registry.get(provider_id, model_id)

    async def get_model_capabilities(self, provider_id: str, model_id: str) -> Optional[ModelCapabilities]:
        model = self.registry.get(provider_id, model_id)
        return model.capabilities if model else None

    async def update_model_capabilities(self, provider_id: str, model_id: str,
                                        capabilities: ModelCapabilities) -> bool:
        return self.registry.update_capabilities(provider_id, model_id, capabilities)

    async def get_model_selection_stats(self, start: Optional[datetime] = None,
                                        end: Optional[datetime] = None) -> Dict[str, int]:
        return self.tracker.selection_stats(start, end)

    async def get_model_selection_accuracy(self, provider_id: str, model_id: str) -> float:
        metrics = self.tracker.get_performance_metrics(provider_id, model_id)
        return metrics.get("accuracy", 0.0)
