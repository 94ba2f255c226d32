# Pipeline state models
# models/pipeline.py
"""Stages of the query state machine and progress updates"""

from pydantic import BaseModel
from enum import Enum


class QueryStage(str, Enum):
    """States of one query; values are what the progress observer receives"""

    CACHE_CHECK = "cache_check"
    INTENT_ANALYSIS = "intent_analysis"
    SCHEMA_RETRIEVAL = "schema_retrieval"
    SCHEMA_CONVERSION = "schema_conversion"
    INTELLIGENCE_ANALYSIS = "intelligence_analysis"
    SQL_GENERATION = "sql_generation"
    SQL_OPTIMIZATION = "sql_optimization"
    SQL_VALIDATION = "sql_validation"
    SQL_EXECUTION = "sql_execution"
    RESPONSE_BUILD = "response_build"
    STREAMING_NOTIFY = "streaming_notify"
    CACHE_WRITE = "cache_write"
    LOGGED = "logged"
    COMPLETE = "completed"
    FAILED = "failed"


class ProgressUpdate(BaseModel):
    """One notification as delivered to the observer"""

    user_id: str
    query_id: str
    stage: QueryStage
    message: str
    percent: int
