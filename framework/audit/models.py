from sqlmodel import SQLModel, Field, Column, JSON
from typing import Optional, List, Dict
from datetime import datetime, timezone


class AuditLog(SQLModel, table=True):
    """One audit entry per saved batch: who ran which operation over how many entities."""
    __tablename__ = "audit_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    operation: str = Field(max_length=50, index=True, description="Operation name, e.g. CREATE or BULK_OPERATION")
    user_id: Optional[str] = Field(default=None, max_length=50, index=True, description="Acting user")
    entity_count: int = Field(default=0, description="Number of entities changed by the batch")
    table_names: str = Field(default="", max_length=500, description="Comma-separated affected tables")
    # Per-entity change records: table, action, key, old_values, new_values
    changes: List[Dict] = Field(default_factory=list, sa_column=Column(JSON))
    created_date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), index=True, description="Created at"
    )
