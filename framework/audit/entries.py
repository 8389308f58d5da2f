"""
Audit entries built from the session's staged changes.

The entry is added to the same session right before the flush, so it is
written (or discarded) together with the changes it describes.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session
from .models import AuditLog

ADDED = "Added"
MODIFIED = "Modified"
DELETED = "Deleted"


class EntityChange(BaseModel):
    """One staged change, with JSON-safe column values."""
    table: str
    action: str
    key: Optional[Any] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None


class AuditBatch(BaseModel):
    operation: str
    user_id: Optional[str] = None
    changes: List[EntityChange] = Field(default_factory=list)

    @property
    def entity_count(self) -> int:
        return len(self.changes)

    @property
    def table_names(self) -> List[str]:
        return sorted({change.table for change in self.changes})

    def to_audit_log(self) -> AuditLog:
        return AuditLog(
            operation=self.operation,
            user_id=self.user_id,
            entity_count=self.entity_count,
            table_names=",".join(self.table_names),
            changes=[change.model_dump(mode="json") for change in self.changes],
        )


def _column_values(state, attribute: str) -> Dict[str, Any]:
    values = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if attribute == "old":
            if history.deleted:
                values[attr.key] = history.deleted[0]
            elif history.unchanged:
                values[attr.key] = history.unchanged[0]
        elif attr.key in state.dict:
            values[attr.key] = state.dict[attr.key]
    return values


def _primary_key(state) -> Optional[Any]:
    identity = state.identity
    if identity is None:
        pk = [state.dict.get(state.mapper.get_property_by_column(c).key) for c in state.mapper.primary_key]
        identity = tuple(pk) if any(v is not None for v in pk) else None
    if identity is None:
        return None
    return identity[0] if len(identity) == 1 else list(identity)


def collect_changes(session: Session) -> List[EntityChange]:
    """Describe every staged insert, update and delete, skipping audit rows."""
    changes: List[EntityChange] = []

    for entity in session.new:
        if isinstance(entity, AuditLog):
            continue
        state = sa_inspect(entity)
        changes.append(EntityChange(
            table=state.mapper.local_table.name,
            action=ADDED,
            key=_primary_key(state),
            new_values=_column_values(state, "new"),
        ))

    for entity in session.dirty:
        if isinstance(entity, AuditLog) or not session.is_modified(entity):
            continue
        state = sa_inspect(entity)
        changes.append(EntityChange(
            table=state.mapper.local_table.name,
            action=MODIFIED,
            key=_primary_key(state),
            old_values=_column_values(state, "old"),
            new_values=_column_values(state, "new"),
        ))

    for entity in session.deleted:
        if isinstance(entity, AuditLog):
            continue
        state = sa_inspect(entity)
        changes.append(EntityChange(
            table=state.mapper.local_table.name,
            action=DELETED,
            key=_primary_key(state),
            old_values=_column_values(state, "old"),
        ))

    return changes


def build_audit_batch(session: Session, user_id: Optional[str], operation: str) -> AuditBatch:
    return AuditBatch(operation=operation, user_id=user_id, changes=collect_changes(session))
