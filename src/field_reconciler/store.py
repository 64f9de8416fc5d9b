"""Mapping store protocol, in-memory store and SQLAlchemy-backed store."""

import copy
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, create_engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .logging_config import get_logger
from .models import AllowedValuesDescriptor, FieldMapping, MigrationStatus, ProposedState

# Initialize logger for this module
logger = get_logger(__name__)

Base = declarative_base()


class MappingStoreError(Exception):
    """The mapping store could not be read or written."""
    pass


@runtime_checkable
class MappingStore(Protocol):
    """Protocol for FieldMapping storage."""

    def save(self, mapping: FieldMapping) -> FieldMapping:
        """Insert or update a mapping and return the stored copy."""
        ...

    def get(self, mapping_id: int) -> Optional[FieldMapping]:
        """Get mapping by id."""
        ...

    def get_by_source_id(self, source_field_id: str) -> Optional[FieldMapping]:
        """Get mapping by source field id or synthetic parent key."""
        ...

    def list_all(self) -> List[FieldMapping]:
        """All mappings ordered by mapping id."""
        ...

    def delete(self, mapping_id: int) -> bool:
        """Delete a mapping. Returns True if deleted."""
        ...

    def status_counts(self) -> Dict[str, int]:
        """Number of mappings per migration status."""
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryMappingStore:
    """In-memory implementation of MappingStore. Reads and writes hand out copies."""

    def __init__(self):
        self._rows: Dict[int, FieldMapping] = {}
        self._next_id = 1

    def save(self, mapping: FieldMapping) -> FieldMapping:
        stored = copy.deepcopy(mapping)
        if stored.mapping_id is None:
            stored.mapping_id = self._next_id
            self._next_id += 1
            stored.created_at = stored.created_at or _now()
        else:
            self._next_id = max(self._next_id, stored.mapping_id + 1)
        stored.updated_at = _now()
        self._rows[stored.mapping_id] = stored
        return copy.deepcopy(stored)

    def get(self, mapping_id: int) -> Optional[FieldMapping]:
        row = self._rows.get(mapping_id)
        return copy.deepcopy(row) if row is not None else None

    def get_by_source_id(self, source_field_id: str) -> Optional[FieldMapping]:
        for row in self._rows.values():
            if row.source_field_id == source_field_id:
                return copy.deepcopy(row)
        return None

    def list_all(self) -> List[FieldMapping]:
        return [copy.deepcopy(self._rows[key]) for key in sorted(self._rows)]

    def delete(self, mapping_id: int) -> bool:
        return self._rows.pop(mapping_id, None) is not None

    def status_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for row in self._rows.values():
            status = MigrationStatus(row.migration_status).value
            counts[status] = counts.get(status, 0) + 1
        return dict(sorted(counts.items()))


class FieldMappingORM(Base):
    """ORM model for custom field mappings."""

    __tablename__ = "field_mappings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_field_id = Column(String(255), nullable=False, unique=True, index=True)
    source_name = Column(String(255), nullable=True)
    source_type = Column(String(255), nullable=True)
    source_subtype = Column(String(255), nullable=True)
    source_category = Column(String(50), nullable=True)
    source_searchable = Column(Boolean, nullable=True)
    source_project_ids = Column(Text, nullable=True)
    source_type_ids = Column(Text, nullable=True)
    source_allowed_values = Column(Text, nullable=True)
    allowed_values_conflicts = Column(Text, nullable=True)
    assignment_count = Column(Integer, nullable=False, default=0)
    required_assignment_count = Column(Integer, nullable=False, default=0)
    default_values = Column(Text, nullable=True)
    target_field_id = Column(Integer, nullable=True)
    parent_mapping_id = Column(Integer, nullable=True)
    proposed_name = Column(String(255), nullable=True)
    proposed_field_format = Column(String(50), nullable=True)
    proposed_is_required = Column(Boolean, nullable=True)
    proposed_is_filter = Column(Boolean, nullable=True)
    proposed_is_for_all = Column(Boolean, nullable=True)
    proposed_is_multiple = Column(Boolean, nullable=True)
    proposed_possible_values = Column(Text, nullable=True)
    proposed_value_dependencies = Column(Text, nullable=True)
    proposed_default_value = Column(Text, nullable=True)
    proposed_tracker_ids = Column(Text, nullable=True)
    proposed_role_ids = Column(Text, nullable=True)
    proposed_project_ids = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    migration_status = Column(String(50), nullable=False, default="PENDING_ANALYSIS", index=True)
    automation_hash = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


def encode_json_column(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def decode_json_column(raw: Optional[str]) -> Any:
    """Decode a JSON text column; malformed content is treated as no data."""
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning(f"Ignoring malformed JSON column value: {raw[:80]!r}")
        return None


def _list_column(raw: Optional[str], cast=str) -> Optional[List[Any]]:
    decoded = decode_json_column(raw)
    if not isinstance(decoded, list):
        return None
    values = []
    for item in decoded:
        try:
            values.append(cast(item))
        except (TypeError, ValueError):
            continue
    return values


def _dependencies_column(raw: Optional[str]) -> Optional[Dict[str, List[str]]]:
    decoded = decode_json_column(raw)
    if not isinstance(decoded, dict):
        return None
    return {
        str(parent): [str(child) for child in children]
        for parent, children in decoded.items()
        if isinstance(children, list)
    }


def _orm_to_mapping(orm_row: FieldMappingORM) -> FieldMapping:
    """Convert ORM row to FieldMapping domain model."""
    try:
        status = MigrationStatus(orm_row.migration_status)
    except ValueError:
        status = MigrationStatus.PENDING_ANALYSIS
    return FieldMapping(
        mapping_id=orm_row.id,
        source_field_id=orm_row.source_field_id,
        source_name=orm_row.source_name,
        source_type=orm_row.source_type,
        source_subtype=orm_row.source_subtype,
        source_category=orm_row.source_category,
        source_searchable=orm_row.source_searchable,
        source_project_ids=_list_column(orm_row.source_project_ids) or [],
        source_type_ids=_list_column(orm_row.source_type_ids) or [],
        source_allowed_values=AllowedValuesDescriptor.from_dict(
            decode_json_column(orm_row.source_allowed_values)
        ),
        allowed_values_conflicts=_list_column(orm_row.allowed_values_conflicts) or [],
        assignment_count=orm_row.assignment_count or 0,
        required_assignment_count=orm_row.required_assignment_count or 0,
        default_values=_list_column(orm_row.default_values) or [],
        target_field_id=orm_row.target_field_id,
        parent_mapping_id=orm_row.parent_mapping_id,
        proposed=ProposedState(
            name=orm_row.proposed_name,
            field_format=orm_row.proposed_field_format,
            is_required=orm_row.proposed_is_required,
            is_filter=orm_row.proposed_is_filter,
            is_for_all=orm_row.proposed_is_for_all,
            is_multiple=orm_row.proposed_is_multiple,
            possible_values=_list_column(orm_row.proposed_possible_values),
            value_dependencies=_dependencies_column(orm_row.proposed_value_dependencies),
            default_value=orm_row.proposed_default_value,
            tracker_ids=_list_column(orm_row.proposed_tracker_ids, int),
            role_ids=_list_column(orm_row.proposed_role_ids, int),
            project_ids=_list_column(orm_row.proposed_project_ids, int),
        ),
        notes=orm_row.notes,
        migration_status=status,
        automation_hash=orm_row.automation_hash,
        created_at=orm_row.created_at,
        updated_at=orm_row.updated_at,
    )


def _mapping_to_orm(mapping: FieldMapping, orm_row: Optional[FieldMappingORM] = None) -> FieldMappingORM:
    """Convert FieldMapping to ORM row."""
    if orm_row is None:
        orm_row = FieldMappingORM()

    proposed = mapping.proposed
    orm_row.source_field_id = mapping.source_field_id
    orm_row.source_name = mapping.source_name
    orm_row.source_type = mapping.source_type
    orm_row.source_subtype = mapping.source_subtype
    orm_row.source_category = mapping.source_category
    orm_row.source_searchable = mapping.source_searchable
    orm_row.source_project_ids = encode_json_column(mapping.source_project_ids)
    orm_row.source_type_ids = encode_json_column(mapping.source_type_ids)
    orm_row.source_allowed_values = encode_json_column(mapping.source_allowed_values.to_dict())
    orm_row.allowed_values_conflicts = encode_json_column(mapping.allowed_values_conflicts or None)
    orm_row.assignment_count = mapping.assignment_count
    orm_row.required_assignment_count = mapping.required_assignment_count
    orm_row.default_values = encode_json_column(mapping.default_values or None)
    orm_row.target_field_id = mapping.target_field_id
    orm_row.parent_mapping_id = mapping.parent_mapping_id
    orm_row.proposed_name = proposed.name
    orm_row.proposed_field_format = proposed.field_format
    orm_row.proposed_is_required = proposed.is_required
    orm_row.proposed_is_filter = proposed.is_filter
    orm_row.proposed_is_for_all = proposed.is_for_all
    orm_row.proposed_is_multiple = proposed.is_multiple
    orm_row.proposed_possible_values = encode_json_column(proposed.possible_values)
    orm_row.proposed_value_dependencies = encode_json_column(proposed.value_dependencies)
    orm_row.proposed_default_value = proposed.default_value
    orm_row.proposed_tracker_ids = encode_json_column(proposed.tracker_ids)
    orm_row.proposed_role_ids = encode_json_column(proposed.role_ids)
    orm_row.proposed_project_ids = encode_json_column(proposed.project_ids)
    orm_row.notes = mapping.notes
    orm_row.migration_status = MigrationStatus(mapping.migration_status).value
    orm_row.automation_hash = mapping.automation_hash
    return orm_row


class SqlMappingStore:
    """SQLAlchemy implementation of MappingStore. Every save commits on its own."""

    def __init__(self, database_url: str):
        """
        Initialize the store and create the table when missing.

        Args:
            database_url: SQLAlchemy URL, e.g. sqlite:///data/field_mappings.db
        """
        self.database_url = database_url
        try:
            self._engine = self._create_engine(database_url)
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise MappingStoreError(f"Could not open mapping store {database_url}: {e}") from e
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)

    @staticmethod
    def _create_engine(database_url: str):
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(
                "sqlite://",
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        if database_url.startswith("sqlite:///"):
            Path(database_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(database_url)

    def save(self, mapping: FieldMapping) -> FieldMapping:
        try:
            with self._session_factory() as session:
                existing = None
                if mapping.mapping_id is not None:
                    existing = session.get(FieldMappingORM, mapping.mapping_id)

                if existing is not None:
                    orm_row = _mapping_to_orm(mapping, existing)
                    orm_row.updated_at = _now()
                else:
                    orm_row = _mapping_to_orm(mapping)
                    if mapping.mapping_id is not None:
                        orm_row.id = mapping.mapping_id
                    now = _now()
                    orm_row.created_at = mapping.created_at or now
                    orm_row.updated_at = now
                    session.add(orm_row)

                session.commit()
                session.refresh(orm_row)
                return _orm_to_mapping(orm_row)
        except SQLAlchemyError as e:
            raise MappingStoreError(f"Failed to save mapping {mapping.source_field_id}: {e}") from e

    def get(self, mapping_id: int) -> Optional[FieldMapping]:
        try:
            with self._session_factory() as session:
                orm_row = session.get(FieldMappingORM, mapping_id)
                return _orm_to_mapping(orm_row) if orm_row is not None else None
        except SQLAlchemyError as e:
            raise MappingStoreError(f"Failed to read mapping #{mapping_id}: {e}") from e

    def get_by_source_id(self, source_field_id: str) -> Optional[FieldMapping]:
        try:
            with self._session_factory() as session:
                orm_row = session.execute(
                    select(FieldMappingORM).where(FieldMappingORM.source_field_id == source_field_id)
                ).scalar_one_or_none()
                return _orm_to_mapping(orm_row) if orm_row is not None else None
        except SQLAlchemyError as e:
            raise MappingStoreError(f"Failed to read mapping {source_field_id}: {e}") from e

    def list_all(self) -> List[FieldMapping]:
        try:
            with self._session_factory() as session:
                rows = session.execute(select(FieldMappingORM).order_by(FieldMappingORM.id)).scalars().all()
                return [_orm_to_mapping(row) for row in rows]
        except SQLAlchemyError as e:
            raise MappingStoreError(f"Failed to list mappings: {e}") from e

    def delete(self, mapping_id: int) -> bool:
        try:
            with self._session_factory() as session:
                orm_row = session.get(FieldMappingORM, mapping_id)
                if orm_row is None:
                    return False
                session.delete(orm_row)
                session.commit()
                return True
        except SQLAlchemyError as e:
            raise MappingStoreError(f"Failed to delete mapping #{mapping_id}: {e}") from e

    def status_counts(self) -> Dict[str, int]:
        try:
            with self._session_factory() as session:
                rows = session.execute(
                    select(FieldMappingORM.migration_status, func.count())
                    .group_by(FieldMappingORM.migration_status)
                    .order_by(FieldMappingORM.migration_status)
                ).all()
                return {status: total for status, total in rows}
        except SQLAlchemyError as e:
            raise MappingStoreError(f"Failed to count mapping statuses: {e}") from e


def open_store(database_url: Optional[str]) -> MappingStore:
    """In-memory store when no URL is given, SQL store otherwise."""
    if not database_url:
        return InMemoryMappingStore()
    return SqlMappingStore(database_url)
