# Application entry
# main.py
"""
Wires the default collaborators into a QueryOrchestrator and answers questions
from the command line. CSV files in the data directory become DuckDB tables.
"""

import argparse
import asyncio
import json
from pathlib import Path
from typing import Optional
import pandas as pd
import structlog
from agents.validator_agent import SelectOnlyValidator
from models.requests import QueryOptions, QueryRequest
from services.cache_service import QueryCacheService
from services.database_service import DatabaseService
from services.feature_flags import FeatureFlagService
from services.llm_service import LLMService
from services.model_selector import ModelSelector
from services.progress_notifier import StructlogProgressNotifier
from services.query_orchestrator import QueryOrchestrator
from services.semantic_cache import SemanticCacheService
from utils.logging import StructuredLogger


StructuredLogger.configure()
logger = structlog.get_logger()


async def load_datasets(db_service: DatabaseService, data_dir: Path) -> int:
    """Load every CSV file of the directory as a table named after the file"""

    if not data_dir.exists():
        logger.warning("Data directory not found, no datasets to load", data_dir=str(data_dir))
        return 0

    loaded_count = 0
    for file in sorted(data_dir.glob("*.csv")):
        try:
            df = pd.read_csv(file)
            await db_service.register_dataframe(file.stem, df)
            loaded_count += 1
        except Exception as e:
            logger.error("Failed to load dataset", file=str(file), error=str(e))

    logger.info("Datasets loaded", count=loaded_count)
    return loaded_count


async def build_orchestrator(
    db_service: Optional[DatabaseService] = None,
    exact_cache: Optional[QueryCacheService] = None,
    llm_service: Optional[LLMService] = None
) -> QueryOrchestrator:
    db_service = db_service or DatabaseService()
    await db_service.initialize()

    if exact_cache is None:
        exact_cache = QueryCacheService()
        await exact_cache.initialize()

    llm_service = llm_service or LLMService()
    providers = llm_service.configured_providers()
    if not providers:
        logger.warning("No LLM provider credentials configured")

    return QueryOrchestrator(
        sql_generator=llm_service,
        schema_provider=db_service,
        sql_validator=SelectOnlyValidator(),
        sql_executor=db_service,
        progress_notifier=StructlogProgressNotifier(),
        settings_provider=FeatureFlagService(),
        semantic_cache=SemanticCacheService(),
        exact_cache=exact_cache,
        model_selector=ModelSelector(providers=providers)
    )


async def run(args: argparse.Namespace) -> int:
    db_service = DatabaseService(args.database) if args.database else DatabaseService()
    await db_service.initialize()
    await load_datasets(db_service, Path(args.data_dir))

    exact_cache = QueryCacheService()
    await exact_cache.initialize()

    orchestrator = await build_orchestrator(db_service, exact_cache)
    request = QueryRequest(
        user_id=args.user,
        question=args.question,
        options=QueryOptions(
            enable_cache=not args.no_cache,
            provider_id=args.provider,
            model_id=args.model
        )
    )

    try:
        response = await orchestrator.process_query(request)
    finally:
        await exact_cache.close()
        await db_service.close()

    print(json.dumps(response.model_dump(mode="json"), indent=2))
    return 0 if response.success else 1


def main():
    parser = argparse.ArgumentParser(description="Answer a natural language question with SQL")
    parser.add_argument("question")
    parser.add_argument("--user", default="cli")
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--database", default=None, help="DuckDB file (in-memory when omitted)")
    parser.add_argument("--provider", default=None)
    parser.add_argument("--model", default=None)
    parser.add_argument("--no-cache", action="store_true")

    raise SystemExit(asyncio.run(run(parser.parse_args())))


if __name__ == "__main__":
    main()
