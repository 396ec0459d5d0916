"""PostgreSQL implementation of MasteryModelRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.errors import translate_sqlalchemy_errors
from app.db.tables import MasteryLevelRow, MasteryModelRow
from app.models.mastery import (
    LevelKind,
    MasteryLevel,
    MasteryModel,
    MasteryThresholds,
)


class PgMasteryModelRepo:
    """Satisfies the MasteryModelRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_model(self, model_id: UUID, org_id: UUID) -> MasteryModel | None:
        stmt = select(MasteryModelRow).where(
            MasteryModelRow.id == model_id,
            MasteryModelRow.organization_id == org_id,
        )
        with translate_sqlalchemy_errors("get mastery model"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_model(row)

    async def list_levels(self, model_id: UUID) -> list[MasteryLevel]:
        stmt = (
            select(MasteryLevelRow)
            .where(
                MasteryLevelRow.mastery_model_id == model_id,
                MasteryLevelRow.archived_at.is_(None),
            )
            .order_by(MasteryLevelRow.display_order)
        )
        with translate_sqlalchemy_errors("list mastery levels"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_level(row) for row in rows]

    async def get_level(self, level_id: UUID) -> MasteryLevel | None:
        stmt = select(MasteryLevelRow).where(MasteryLevelRow.id == level_id)
        with translate_sqlalchemy_errors("get mastery level"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_level(row)


def _row_to_model(row: MasteryModelRow) -> MasteryModel:
    values = (
        row.threshold_emerging,
        row.threshold_developing,
        row.threshold_proficient,
        row.threshold_mastered,
    )
    thresholds = None
    if all(v is not None for v in values):
        thresholds = MasteryThresholds(
            emerging=row.threshold_emerging,
            developing=row.threshold_developing,
            proficient=row.threshold_proficient,
            mastered=row.threshold_mastered,
        )
    return MasteryModel(
        id=row.id,
        organization_id=row.organization_id,
        name=row.name,
        thresholds=thresholds,
        is_active=row.is_active,
    )


def _row_to_level(row: MasteryLevelRow) -> MasteryLevel:
    return MasteryLevel(
        id=row.id,
        mastery_model_id=row.mastery_model_id,
        label=row.label,
        display_order=row.display_order,
        kind=LevelKind(row.kind) if row.kind else None,
        description=row.description,
    )
