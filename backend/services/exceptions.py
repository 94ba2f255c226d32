# Pipeline error taxonomy
# services/exceptions.py
"""
Errors raised inside the query pipeline and the model selector.
Only NoSuitableModelError escapes to callers of the selector; the orchestrator
converts everything else into a failure response.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class carrying the best-known SQL for diagnostics"""

    def __init__(self, message: str, sql: str = ""):
        super().__init__(message)
        self.message = message
        self.sql = sql


class GenerationFailure(PipelineError):
    """The model returned empty or malformed SQL"""


class ValidationFailure(PipelineError):
    """The validator rejected the SQL"""


class ExecutionFailure(PipelineError):
    """The database collaborator reported an error"""


class CacheFailure(PipelineError):
    """Non-fatal; the pipeline proceeds as a cache miss"""


class QueryCancelledError(PipelineError):
    """Cancellation observed between two stages"""

    def __init__(self, stage: Optional[str] = None):
        super().__init__("Query was cancelled")
        self.stage = stage


class NoSuitableModelError(Exception):
    """Scoring produced zero candidates"""
