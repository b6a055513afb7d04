"""Persistence for pricing patterns and import sessions.

Patterns are unique per (org_id, source, normalized_key). Updates go through
the pure ``apply_observation`` reducer so stored aggregates and in-memory
replays always agree.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from roofcalc.canonical import normalize_key
from roofcalc.db.models import ImportSessionModel, PricingPatternModel
from roofcalc.errors import NotFoundError, ValidationError
from roofcalc.models import ImportSession, ImportStatus, PricingObservation, PricingPattern
from roofcalc.pricing.patterns import apply_observation

logger = logging.getLogger(__name__)

# Fields an operator may edit by hand on a stored pattern
OVERRIDABLE_FIELDS = frozenset(
    {"item_code", "cost_price", "markup_percentage", "unit", "avg_unit_price", "product_id"}
)

_AGGREGATE_FIELDS = (
    "item_description",
    "avg_unit_price",
    "min_unit_price",
    "max_unit_price",
    "avg_quantity",
    "occurrence_count",
    "total_revenue",
    "item_code",
    "cost_price",
    "markup_percentage",
    "unit",
    "product_id",
)


def _row_to_pattern(row: PricingPatternModel) -> PricingPattern:
    return PricingPattern(
        id=row.id,
        org_id=row.org_id,
        source=row.source,
        normalized_key=row.normalized_key,
        item_description=row.item_description,
        avg_unit_price=row.avg_unit_price,
        min_unit_price=row.min_unit_price,
        max_unit_price=row.max_unit_price,
        avg_quantity=row.avg_quantity or 0.0,
        occurrence_count=row.occurrence_count,
        total_revenue=row.total_revenue or 0.0,
        item_code=row.item_code,
        cost_price=row.cost_price,
        markup_percentage=row.markup_percentage,
        unit=row.unit,
        product_id=row.product_id,
        last_updated_at=row.last_updated_at,
    )


class PricingPatternStore:
    """Keyed CRUD over the pricing_patterns table for one DB session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_row(self, org_id: str, source: str, key: str) -> PricingPatternModel | None:
        stmt = select(PricingPatternModel).where(
            and_(
                PricingPatternModel.org_id == org_id,
                PricingPatternModel.source == source,
                PricingPatternModel.normalized_key == key,
            )
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def upsert(self, org_id: str, observation: PricingObservation) -> PricingPattern:
        """Fold an observation into the pattern for its (source, key).

        Raises:
            ValidationError: If the description normalizes to an empty key
        """
        key = normalize_key(observation.description)
        if not key:
            raise ValidationError(
                f"Line description {observation.description!r} has no usable characters"
            )

        row = await self._get_row(org_id, observation.source, key)
        existing = _row_to_pattern(row) if row is not None else None
        updated = apply_observation(existing, observation, org_id)

        if row is None:
            row = PricingPatternModel(
                org_id=org_id,
                source=updated.source,
                normalized_key=key,
            )
            self.session.add(row)

        for name in _AGGREGATE_FIELDS:
            setattr(row, name, getattr(updated, name))
        row.last_updated_at = datetime.now(timezone.utc)

        await self.session.flush()
        return _row_to_pattern(row)

    async def lookup(
        self, org_id: str, normalized_key: str, source: str | None = None
    ) -> PricingPattern | None:
        """Find a pattern by key; without a source the best-supported one wins."""
        if not normalized_key:
            return None

        stmt = select(PricingPatternModel).where(
            and_(
                PricingPatternModel.org_id == org_id,
                PricingPatternModel.normalized_key == normalized_key,
            )
        )
        if source is not None:
            stmt = stmt.where(PricingPatternModel.source == source)
        stmt = stmt.order_by(PricingPatternModel.occurrence_count.desc()).limit(1)

        row = (await self.session.execute(stmt)).scalar_one_or_none()
        return _row_to_pattern(row) if row is not None else None

    async def list_patterns(self, org_id: str, source: str | None = None) -> list[PricingPattern]:
        """All patterns for the organization, most frequent first."""
        stmt = select(PricingPatternModel).where(PricingPatternModel.org_id == org_id)
        if source is not None:
            stmt = stmt.where(PricingPatternModel.source == source)
        stmt = stmt.order_by(
            PricingPatternModel.occurrence_count.desc(), PricingPatternModel.normalized_key
        )

        rows = (await self.session.execute(stmt)).scalars().all()
        return [_row_to_pattern(row) for row in rows]

    async def clear(self, org_id: str, source: str | None = None) -> int:
        """Delete the organization's patterns (one source, or all). Returns rows deleted."""
        stmt = delete(PricingPatternModel).where(PricingPatternModel.org_id == org_id)
        if source is not None:
            stmt = stmt.where(PricingPatternModel.source == source)

        result = await self.session.execute(stmt)
        deleted = result.rowcount or 0
        logger.info(f"Cleared {deleted} pricing patterns for org={org_id} source={source or 'all'}")
        return deleted

    async def update_overrides(self, org_id: str, pattern_id: UUID, **fields) -> PricingPattern:
        """Apply manual edits to a stored pattern.

        Raises:
            ValidationError: On a field that may not be edited
            NotFoundError: If the pattern does not exist for this organization
        """
        unknown = set(fields) - OVERRIDABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot override pattern fields: {', '.join(sorted(unknown))}")

        stmt = select(PricingPatternModel).where(
            and_(PricingPatternModel.id == pattern_id, PricingPatternModel.org_id == org_id)
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Pricing pattern {pattern_id} not found")

        if fields.get("avg_unit_price") is not None and fields["avg_unit_price"] < 0:
            raise ValidationError("avg_unit_price must be >= 0")

        for name, value in fields.items():
            setattr(row, name, value)
        row.last_updated_at = datetime.now(timezone.utc)

        await self.session.flush()
        return _row_to_pattern(row)


def _row_to_session(row: ImportSessionModel) -> ImportSession:
    return ImportSession(
        id=row.id,
        org_id=row.org_id,
        filename=row.filename,
        source=row.source,
        status=row.status,
        total_quotes=row.total_quotes,
        accepted_quotes=row.accepted_quotes,
        total_line_items=row.total_line_items,
        unique_patterns=row.unique_patterns,
        error_message=row.error_message,
        created_at=row.created_at,
        completed_at=row.completed_at,
    )


class ImportSessionRepository:
    """Audit trail for pricing imports.

    A session is committed as soon as it is created so that a failed import
    still leaves a durable ``failed`` record after its own work is rolled back.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, org_id: str, filename: str, source: str) -> UUID:
        row = ImportSessionModel(
            org_id=org_id,
            filename=filename,
            source=source,
            status=ImportStatus.PROCESSING.value,
        )
        self.session.add(row)
        await self.session.commit()
        return row.id

    async def _get(self, session_id: UUID) -> ImportSessionModel:
        row = await self.session.get(ImportSessionModel, session_id)
        if row is None:
            raise NotFoundError(f"Import session {session_id} not found")
        return row

    async def complete(
        self,
        session_id: UUID,
        *,
        total_quotes: int,
        accepted_quotes: int,
        total_line_items: int,
        unique_patterns: int,
    ) -> ImportSession:
        row = await self._get(session_id)
        row.status = ImportStatus.COMPLETED.value
        row.total_quotes = total_quotes
        row.accepted_quotes = accepted_quotes
        row.total_line_items = total_line_items
        row.unique_patterns = unique_patterns
        row.completed_at = datetime.now(timezone.utc)
        await self.session.flush()
        return _row_to_session(row)

    async def fail(self, session_id: UUID, message: str) -> ImportSession:
        """Discard the import's pending work and record the failure."""
        await self.session.rollback()

        row = await self._get(session_id)
        row.status = ImportStatus.FAILED.value
        row.error_message = message
        row.completed_at = datetime.now(timezone.utc)
        await self.session.commit()

        logger.warning(f"Import session {session_id} failed: {message}")
        return _row_to_session(row)

    async def get(self, session_id: UUID) -> ImportSession:
        return _row_to_session(await self._get(session_id))

    async def list_sessions(self, org_id: str) -> list[ImportSession]:
        """Sessions for the organization, newest first."""
        stmt = (
            select(ImportSessionModel)
            .where(ImportSessionModel.org_id == org_id)
            .order_by(ImportSessionModel.created_at.desc())
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return [_row_to_session(row) for row in rows]
