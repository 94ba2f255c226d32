# Schema models
# models/schema.py
"""Schema snapshots consumed by SQL generation"""

from pydantic import BaseModel, Field
from typing import List, Optional


class ColumnInfo(BaseModel):
    """Single column as seen by the SQL generator"""

    name: str
    data_type: str = "nvarchar"
    is_nullable: bool = True
    is_primary_key: bool = False
    is_foreign_key: bool = False
    description: Optional[str] = None


class TableInfo(BaseModel):
    """Table with its ordered columns"""

    name: str
    schema_name: str = "dbo"
    columns: List[ColumnInfo] = Field(default_factory=list)
    description: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.name}" if self.schema_name else self.name


class SchemaSnapshot(BaseModel):
    """
    Ordered set of tables relevant to one question.
    Read-only once produced by the schema provider.
    """

    tables: List[TableInfo] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def column_count(self) -> int:
        return sum(len(table.columns) for table in self.tables)

    def table_names(self) -> List[str]:
        return [table.name for table in self.tables]


class BusinessColumn(BaseModel):
    """Column described in business terms by the context builder"""

    column_name: str
    business_data_type: Optional[str] = None
    is_key_column: bool = False
    business_meaning: Optional[str] = None


class BusinessTable(BaseModel):
    """Table described in business terms by the context builder"""

    table_name: str
    schema_name: Optional[str] = None
    business_purpose: Optional[str] = None
    columns: List[BusinessColumn] = Field(default_factory=list)


class ContextualSchema(BaseModel):
    """Schema subset pre-selected for an enhanced-context request"""

    relevant_tables: List[BusinessTable] = Field(default_factory=list)
