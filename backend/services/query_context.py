# Enhanced-context resolution
# services/query_context.py
"""
Decides whether a request can take the enhanced fast path and converts the
caller's business schema into the snapshot consumed by SQL generation.
"""

from dataclasses import dataclass
from typing import Optional, Union
from models.requests import BusinessProfile, QueryRequest
from models.schema import ColumnInfo, ContextualSchema, SchemaSnapshot, TableInfo
from models.selection import QueryComplexity
from utils.config import settings


BUSINESS_TYPE_MAPPING = {
    "integer": "bigint",
    "text": "nvarchar",
    "decimal": "decimal(18,2)",
    "currency": "decimal(18,2)",
    "date": "datetime2",
    "boolean": "bit",
}

# Intent types reported by the context builder, by the effort they usually take
INTENT_COMPLEXITY = {
    "lookup": QueryComplexity.SIMPLE,
    "filter": QueryComplexity.SIMPLE,
    "general": QueryComplexity.SIMPLE,
    "aggregation": QueryComplexity.MEDIUM,
    "ranking": QueryComplexity.MEDIUM,
    "trend": QueryComplexity.COMPLEX,
    "comparison": QueryComplexity.COMPLEX,
    "analytical": QueryComplexity.VERY_COMPLEX,
    "forecast": QueryComplexity.VERY_COMPLEX,
}


@dataclass(frozen=True)
class EnhancedPlan:
    profile: BusinessProfile
    schema: ContextualSchema
    prompt: str


@dataclass(frozen=True)
class BasicPlan:
    reason: str


QueryPlan = Union[EnhancedPlan, BasicPlan]


def resolve_query_context(
    request: QueryRequest,
    min_confidence: Optional[float] = None,
    min_prompt_length: Optional[int] = None
) -> QueryPlan:
    """First failing check wins; its reason is recorded as the fallback reason"""

    min_confidence = settings.enhanced_min_confidence if min_confidence is None else min_confidence
    min_prompt_length = settings.enhanced_min_prompt_length if min_prompt_length is None else min_prompt_length

    context = request.enhanced_context
    if context is None:
        return BasicPlan("No enhanced context provided")
    if context.business_profile is None:
        return BasicPlan("No business profile provided")
    if context.schema_metadata is None:
        return BasicPlan("No schema metadata provided")
    if not context.enhanced_prompt:
        return BasicPlan("No enhanced prompt provided")

    confidence = context.business_profile.confidence_score
    if confidence < min_confidence:
        return BasicPlan(f"Low business context confidence ({confidence:.2%})")
    if not context.schema_metadata.relevant_tables:
        return BasicPlan("No relevant tables in schema metadata")

    prompt_length = len(context.enhanced_prompt)
    if prompt_length < min_prompt_length:
        return BasicPlan(f"Enhanced prompt too short ({prompt_length} chars)")

    return EnhancedPlan(
        profile=context.business_profile,
        schema=context.schema_metadata,
        prompt=context.enhanced_prompt
    )


def map_business_type(business_type: Optional[str]) -> str:
    if not business_type:
        return "nvarchar"
    return BUSINESS_TYPE_MAPPING.get(business_type.strip().lower(), business_type)


def convert_contextual_schema(schema: ContextualSchema) -> SchemaSnapshot:
    tables = []
    for table in schema.relevant_tables:
        columns = [
            ColumnInfo(
                name=column.column_name,
                data_type=map_business_type(column.business_data_type),
                is_nullable=True,
                is_primary_key=column.is_key_column,
                description=column.business_meaning
            )
            for column in table.columns
        ]
        tables.append(TableInfo(
            name=table.table_name,
            schema_name=table.schema_name or "dbo",
            columns=columns,
            description=table.business_purpose
        ))

    return SchemaSnapshot(tables=tables)


def complexity_for_profile(profile: BusinessProfile) -> QueryComplexity:
    return INTENT_COMPLEXITY.get(profile.intent_type.lower(), QueryComplexity.MEDIUM)
