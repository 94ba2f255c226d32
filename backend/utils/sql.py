# SQL text helpers
# utils/sql.py
"""SQL extraction, read-only checks and cache key hashing"""

import base64
import hashlib
import re
from typing import Optional
import sqlparse


FORBIDDEN_KEYWORDS = {
    'DROP', 'DELETE', 'TRUNCATE', 'UPDATE', 'INSERT', 'MERGE',
    'CREATE', 'ALTER', 'EXEC', 'EXECUTE', 'GRANT', 'REVOKE'
}


def extract_sql_from_response(response: str) -> Optional[str]:
    """
    Extracts clean SQL from LLM response.
    Handles fenced and bare responses; returns None when no query is present.
    """

    if not response:
        return None

    # Remove markdown code blocks if present
    if "```sql" in response:
        start = response.find("```sql") + 6
        end = response.find("```", start)
        if end > start:
            response = response[start:end]
    elif "```" in response:
        start = response.find("```") + 3
        end = response.find("```", start)
        if end > start:
            response = response[start:end]

    sql = response.strip().rstrip(';').strip()

    if not re.match(r'^(SELECT|WITH)\b', sql, re.I):
        return None

    return sql


def is_read_only(sql: str) -> bool:
    """True when the text is a single SELECT (or CTE) statement"""

    statements = [s for s in sqlparse.parse(sql) if str(s).strip().strip(';')]
    if len(statements) != 1:
        return False

    statement = statements[0]
    if statement.get_type() not in ('SELECT', 'UNKNOWN'):
        return False

    for token in statement.flatten():
        if token.ttype in sqlparse.tokens.Keyword and token.normalized.upper() in FORBIDDEN_KEYWORDS:
            return False

    first = statement.token_first(skip_cm=True)
    return first is not None and first.normalized.upper() in ('SELECT', 'WITH')


def normalize_question(question: str) -> str:
    """Trimmed, case-folded form used for cache addressing"""
    return question.strip().casefold()


def query_hash(question: str) -> str:
    """Stable cache key for a natural language question"""
    digest = hashlib.sha256(normalize_question(question).encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")
