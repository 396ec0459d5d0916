from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.mastery import MasteryLevel, MasteryModel


class MasteryModelRepo(Protocol):
    async def get_model(self, model_id: UUID, org_id: UUID) -> MasteryModel | None: ...
    async def list_levels(self, model_id: UUID) -> list[MasteryLevel]: ...
    async def get_level(self, level_id: UUID) -> MasteryLevel | None: ...


class InMemoryMasteryModelRepo:
    def __init__(self) -> None:
        self._models: dict[UUID, MasteryModel] = {}
        self._levels: dict[UUID, MasteryLevel] = {}

    def add_model(self, model: MasteryModel, levels: list[MasteryLevel]) -> None:
        if model.id in self._models:
            raise ValueError("mastery model already exists")
        self._models[model.id] = model
        for level in levels:
            self._levels[level.id] = level

    def clear(self) -> None:
        self._models.clear()
        self._levels.clear()

    async def get_model(self, model_id: UUID, org_id: UUID) -> MasteryModel | None:
        model = self._models.get(model_id)
        if model is None or model.organization_id != org_id:
            return None
        return model

    async def list_levels(self, model_id: UUID) -> list[MasteryLevel]:
        levels = [
            lvl for lvl in self._levels.values() if lvl.mastery_model_id == model_id
        ]
        return sorted(levels, key=lambda lvl: lvl.display_order)

    async def get_level(self, level_id: UUID) -> MasteryLevel | None:
        return self._levels.get(level_id)
