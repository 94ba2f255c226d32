# Prometheus instrumentation
# utils/metrics.py
"""Prometheus metrics for the query pipeline and the model selector"""

from prometheus_client import Counter, Histogram


QUERY_COUNT = Counter(
    "nl2sql_queries_total",
    "Total natural language queries processed",
    ["path", "status"]
)

QUERY_DURATION = Histogram(
    "nl2sql_query_duration_seconds",
    "End-to-end query processing duration",
    ["path"]
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache operations",
    ["cache", "operation", "status"]
)

MODEL_SELECTIONS = Counter(
    "model_selections_total",
    "Models chosen by the selector",
    ["provider", "model", "priority"]
)

PROVIDER_OUTCOMES = Counter(
    "provider_outcomes_total",
    "LLM provider call outcomes",
    ["provider", "status"]
)
