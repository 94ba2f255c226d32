# Services package
# services/__init__.py
"""
Service layer: model selection, caching and the default collaborators.
The orchestrator is imported from services.query_orchestrator directly since it
depends on the agents package, which itself depends on services.
"""

from .exceptions import (
    PipelineError,
    GenerationFailure,
    ValidationFailure,
    ExecutionFailure,
    CacheFailure,
    QueryCancelledError,
    NoSuitableModelError
)
from .model_registry import ModelCapabilityRegistry
from .performance_tracker import PerformanceTracker, ProviderAvailabilityTracker
from .model_selector import ModelSelector
from .cache_service import QueryCacheService
from .semantic_cache import SemanticCacheService
from .cache_coordinator import CacheCoordinator
from .feature_flags import FeatureFlagService
from .progress_notifier import ProgressReporter, StructlogProgressNotifier
from .query_context import EnhancedPlan, BasicPlan, resolve_query_context
from .llm_service import LLMService
from .database_service import DatabaseService

__all__ = [
    'PipelineError',
    'GenerationFailure',
    'ValidationFailure',
    'ExecutionFailure',
    'CacheFailure',
    'QueryCancelledError',
    'NoSuitableModelError',
    'ModelCapabilityRegistry',
    'PerformanceTracker',
    'ProviderAvailabilityTracker',
    'ModelSelector',
    'QueryCacheService',
    'SemanticCacheService',
    'CacheCoordinator',
    'FeatureFlagService',
    'ProgressReporter',
    'StructlogProgressNotifier',
    'EnhancedPlan',
    'BasicPlan',
    'resolve_query_context',
    'LLMService',
    'DatabaseService'
]
