from sqlalchemy.orm import declared_attr
from sqlmodel import SQLModel, Field


class VersionedModel(SQLModel):
    """Base for tables guarded by optimistic concurrency.

    `version` is the SQLAlchemy version counter: every UPDATE/DELETE is issued
    with `WHERE version = <loaded value>` and bumps it, so a row changed by
    someone else since it was loaded fails with StaleDataError.
    """

    version: int = Field(default=1, nullable=False)

    @declared_attr.directive
    def __mapper_args__(cls):
        return {"version_id_col": cls.__table__.c.version}
