# Environment configuration
# utils/config.py
"""
Configuration management with environment variables and fallbacks.
Every tunable constant of the query pipeline and the model selector lives here.
"""

from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Centralized configuration with defaults that run without any external service.
    Redis and LLM credentials are optional; the pipeline degrades to in-process
    collaborators when they are missing.
    """

    # Application
    app_name: str = "NL2SQL Query Orchestrator"
    environment: str = "development"
    log_level: str = "INFO"

    # LLM providers
    gemini_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    azure_openai_api_key: Optional[str] = None
    azure_openai_endpoint: Optional[str] = None
    azure_openai_api_version: str = "2024-02-01"
    llm_temperature: float = 0.1  # Low for accuracy
    llm_max_tokens: int = 1024
    llm_retry_attempts: int = 3

    # Model selection
    default_selection_priority: str = "balanced"
    default_max_cost: float = 0.05
    default_max_duration_ms: int = 10000
    default_min_accuracy: float = 0.7
    model_catalog_path: Optional[str] = None
    capabilities_refresh_seconds: int = 3600
    performance_window_size: int = 100
    performance_metrics_days: int = 7
    provider_cooldown_seconds: int = 300

    # Query pipeline
    optimization_confidence_threshold: float = 0.8
    enhanced_min_confidence: float = 0.10
    enhanced_min_prompt_length: int = 100

    # Caching
    enable_query_caching: bool = True
    enable_enhanced_semantic_cache: bool = True
    semantic_similarity_threshold: float = 0.85
    semantic_max_results: int = 5
    semantic_cache_max_entries: int = 1000
    cache_ttl_seconds: int = 86400  # 24 hours
    redis_url: Optional[str] = None
    enable_cache_fallback: bool = True

    # Database
    duckdb_path: str = ":memory:"
    max_query_rows: int = 1000
    query_timeout_seconds: int = 30

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "allow",
        "protected_namespaces": ("settings_",),
    }


settings = Settings()
