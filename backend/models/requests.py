# Query request models
# models/requests.py
"""Request models accepted by the query orchestrator"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from models.schema import ContextualSchema


class QueryOptions(BaseModel):
    """Per-request execution options"""

    enable_cache: bool = Field(True, description="Allow cached answers for this request")
    provider_id: Optional[str] = Field(None, description="Force a specific AI provider")
    model_id: Optional[str] = Field(None, description="Force a specific model")
    max_rows: Optional[int] = Field(None, description="Maximum rows to return (None = use default)")
    timeout_seconds: Optional[int] = Field(None, description="Execution timeout (None = use default)")

    model_config = {"frozen": True, "protected_namespaces": ()}

    @field_validator('max_rows')
    @classmethod
    def validate_max_rows(cls, v):
        """Validate max_rows - None means use default"""
        if v is not None and v < 0:
            raise ValueError("max_rows must be non-negative")
        if v is not None and v > 10000:
            raise ValueError("max_rows cannot exceed 10000")
        return v

    @field_validator('timeout_seconds')
    @classmethod
    def validate_timeout(cls, v):
        if v is not None and not 0 <= v <= 300:
            raise ValueError("timeout_seconds must be between 0 and 300")
        return v


class BusinessDomain(BaseModel):
    name: str = "General"
    description: Optional[str] = None


class BusinessProfile(BaseModel):
    """Intent and domain detected ahead of the request by the context builder"""

    intent_type: str = "general"
    domain: BusinessDomain = Field(default_factory=BusinessDomain)
    confidence_score: float = Field(0.0, ge=0, le=1)


class EnhancedContext(BaseModel):
    """
    Pre-computed business context attached to a request.
    Every member is optional here; validity is decided as a unit by
    services.query_context.resolve_query_context.
    """

    business_profile: Optional[BusinessProfile] = None
    schema_metadata: Optional[ContextualSchema] = None
    enhanced_prompt: Optional[str] = None


class QueryRequest(BaseModel):
    """Main query request model"""

    user_id: str
    question: str = Field(..., min_length=1, max_length=2000, description="Natural language query")
    session_id: Optional[str] = None
    options: QueryOptions = Field(default_factory=QueryOptions)
    enhanced_context: Optional[EnhancedContext] = None

    model_config = {"frozen": True}

    @field_validator('question')
    @classmethod
    def clean_question(cls, v):
        """Collapse whitespace and reject script content"""
        v = ' '.join(v.split())

        forbidden = ['<script', 'javascript:', 'onclick']
        if any(f in v.lower() for f in forbidden):
            raise ValueError("Query contains forbidden content")

        return v
