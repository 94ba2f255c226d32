# Models package
# models/__init__.py
"""Data models for the query pipeline and the model selector"""

from .requests import QueryRequest, QueryOptions, EnhancedContext, BusinessProfile, BusinessDomain
from .responses import (
    QueryResponse, GenerationResult, OptimizationResult, ExecutionResult,
    PromptDetails, ProcessingPath, QueryStreamEvent
)
from .schema import SchemaSnapshot, TableInfo, ColumnInfo, ContextualSchema, BusinessTable, BusinessColumn
from .selection import (
    ModelOption, ModelCapabilities, ModelSelectionCriteria, ModelSelectionResult,
    PerformanceSample, SelectionPriority, QueryComplexity, QualityTier, model_key
)
from .pipeline import QueryStage, ProgressUpdate

__all__ = [
    'QueryRequest', 'QueryOptions', 'EnhancedContext', 'BusinessProfile', 'BusinessDomain',
    'QueryResponse', 'GenerationResult', 'OptimizationResult', 'ExecutionResult',
    'PromptDetails', 'ProcessingPath', 'QueryStreamEvent',
    'SchemaSnapshot', 'TableInfo', 'ColumnInfo', 'ContextualSchema', 'BusinessTable', 'BusinessColumn',
    'ModelOption', 'ModelCapabilities', 'ModelSelectionCriteria', 'ModelSelectionResult',
    'PerformanceSample', 'SelectionPriority', 'QueryComplexity', 'QualityTier', 'model_key',
    'QueryStage', 'ProgressUpdate'
]
