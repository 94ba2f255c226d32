# DuckDB management
# services/database_service.py
"""
DuckDB database service for query execution and schema discovery.
Serves as the default SQL executor and schema provider of the orchestrator.
"""

import asyncio
import re
import time
from typing import Dict, List, Optional, Tuple
import duckdb
import pandas as pd
import structlog
from models.requests import QueryOptions
from models.responses import ExecutionResult
from models.schema import ColumnInfo, SchemaSnapshot, TableInfo
from services.interfaces import SchemaProvider, SqlExecutor
from utils.config import settings


logger = structlog.get_logger()

WORD_PATTERN = re.compile(r"[a-z0-9]+")


class DatabaseService(SqlExecutor, SchemaProvider):
    """
    Manages the DuckDB connection.
    Each call runs on its own cursor in a worker thread.
    """

    def __init__(self, db_path: Optional[str] = None, max_tables: int = 10):
        self.db_path = db_path or settings.duckdb_path
        self.max_tables = max_tables
        self.main_conn: Optional[duckdb.DuckDBPyConnection] = None
        self.logger = logger.bind(service="DatabaseService")

    async def initialize(self):
        """Initialize database service"""
        if self.main_conn is not None:
            return

        self.logger.info("Initializing database service", db_path=self.db_path)
        self.main_conn = duckdb.connect(self.db_path)
        self.main_conn.execute("SET threads TO 4")

    async def close(self):
        if self.main_conn is not None:
            self.main_conn.close()
            self.main_conn = None

    async def register_dataframe(self, table_name: str, df: pd.DataFrame):
        """Materializes a DataFrame as a queryable table"""
        await self.initialize()
        cursor = self.main_conn.cursor()
        try:
            cursor.register("_incoming", df)
            await asyncio.to_thread(cursor.execute, f'CREATE OR REPLACE TABLE "{table_name}" AS SELECT * FROM _incoming')
            cursor.unregister("_incoming")
        finally:
            cursor.close()

        self.logger.info("Registered table", table_name=table_name, rows=len(df), columns=len(df.columns))

    async def execute_sql(self, sql: str, options: Optional[QueryOptions] = None) -> ExecutionResult:
        """
        Runs read-only SQL and returns at most max_rows rows.
        Database errors are reported in the result, not raised.
        """
        await self.initialize()
        max_rows = (options.max_rows if options and options.max_rows else None) or settings.max_query_rows

        start = time.perf_counter()
        try:
            columns, rows = await asyncio.to_thread(self._run, sql, max_rows)
        except duckdb.Error as e:
            self.logger.error("Query execution failed", sql=sql[:200], error=str(e))
            return ExecutionResult(
                success=False,
                error=str(e),
                execution_time_ms=(time.perf_counter() - start) * 1000
            )

        data = [dict(zip(columns, row)) for row in rows]
        elapsed_ms = (time.perf_counter() - start) * 1000

        self.logger.info("Query executed successfully", row_count=len(data), execution_time_ms=elapsed_ms)

        return ExecutionResult(
            success=True,
            columns=columns,
            data=data,
            row_count=len(data),
            execution_time_ms=elapsed_ms
        )

    def _run(self, sql: str, max_rows: int) -> Tuple[List[str], List[tuple]]:
        cursor = self.main_conn.cursor()
        try:
            result = cursor.execute(sql)
            columns = [desc[0] for desc in result.description] if result.description else []
            return columns, result.fetchmany(max_rows)
        finally:
            cursor.close()

    async def list_all_tables(self) -> List[str]:
        """Lists all base tables and views in the main schema"""
        await self.initialize()
        columns, rows = await asyncio.to_thread(
            self._run,
            "SELECT table_name FROM information_schema.tables WHERE table_schema = 'main' ORDER BY table_name",
            10000
        )
        return [row[0] for row in rows]

    async def get_table_schema(self, table_name: str) -> Optional[TableInfo]:
        await self.initialize()
        cursor = self.main_conn.cursor()
        try:
            rows = await asyncio.to_thread(
                lambda: cursor.execute(
                    """
                    SELECT column_name, data_type, is_nullable
                    FROM information_schema.columns
                    WHERE table_schema = 'main' AND table_name = ?
                    ORDER BY ordinal_position
                    """,
                    [table_name]
                ).fetchall()
            )
        finally:
            cursor.close()

        if not rows:
            return None

        return TableInfo(
            name=table_name,
            schema_name="main",
            columns=[
                ColumnInfo(name=name, data_type=data_type.lower(), is_nullable=(nullable == "YES"))
                for name, data_type, nullable in rows
            ]
        )

    async def get_relevant_schema(self, question: str) -> SchemaSnapshot:
        """
        Tables ranked by how many question words their table and column names share.
        With no overlap at all every table is returned, up to max_tables.
        """
        words = set(WORD_PATTERN.findall(question.lower()))
        words |= {w.rstrip("s") for w in words if len(w) > 3}

        scored: Dict[str, Tuple[int, TableInfo]] = {}
        for table_name in await self.list_all_tables():
            table = await self.get_table_schema(table_name)
            if table is None:
                continue
            scored[table_name] = (self._relevance(words, table), table)

        relevant = [(score, table) for score, table in scored.values() if score > 0]
        if not relevant:
            relevant = list(scored.values())

        relevant.sort(key=lambda item: (-item[0], item[1].name))
        tables = [table for _, table in relevant[:self.max_tables]]

        self.logger.info("Resolved relevant schema",
                       tables=[t.name for t in tables],
                       candidates=len(scored))
        return SchemaSnapshot(tables=tables)

    @staticmethod
    def _relevance(words: set, table: TableInfo) -> int:
        table_words = set(WORD_PATTERN.findall(table.name.lower()))
        table_words |= {w.rstrip("s") for w in table_words}
        score = 2 * len(words & table_words)

        for column in table.columns:
            column_words = set(WORD_PATTERN.findall(column.name.lower()))
            if words & column_words:
                score += 1
        return score
