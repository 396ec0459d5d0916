"""Mastery model repos: in-memory contract and the pg row converters."""

from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.db.errors import translate_sqlalchemy_errors
from app.db.tables import MasteryLevelRow, MasteryModelRow
from app.models.mastery import LevelKind
from app.repos.mastery_repo import InMemoryMasteryModelRepo
from app.repos.pg_mastery_repo import _row_to_level, _row_to_model
from app.services.errors import PersistenceError
from tests.conftest import THRESHOLDS, make_model


def test_levels_come_back_in_display_order() -> None:
    repo = InMemoryMasteryModelRepo()
    model, levels = make_model(uuid4())
    repo.add_model(model, list(reversed(levels)))

    listed = asyncio.run(repo.list_levels(model.id))
    assert [lvl.display_order for lvl in listed] == [0, 1, 2, 3, 4]


def test_get_model_is_org_scoped() -> None:
    repo = InMemoryMasteryModelRepo()
    org_id = uuid4()
    model, levels = make_model(org_id)
    repo.add_model(model, levels)

    assert asyncio.run(repo.get_model(model.id, org_id)) == model
    assert asyncio.run(repo.get_model(model.id, uuid4())) is None


def test_duplicate_model_rejected() -> None:
    repo = InMemoryMasteryModelRepo()
    model, levels = make_model(uuid4())
    repo.add_model(model, levels)
    with pytest.raises(ValueError):
        repo.add_model(model, levels)


# ---- pg converters ----


def _model_row(**thresholds) -> MasteryModelRow:
    return MasteryModelRow(
        id=uuid4(),
        organization_id=uuid4(),
        name="Standard",
        is_active=True,
        **thresholds,
    )


def test_row_with_all_thresholds() -> None:
    row = _model_row(
        threshold_emerging=1,
        threshold_developing=3,
        threshold_proficient=5,
        threshold_mastered=8,
    )
    assert _row_to_model(row).thresholds == THRESHOLDS


def test_partial_thresholds_mean_unconfigured() -> None:
    row = _model_row(threshold_emerging=1, threshold_developing=3)
    assert _row_to_model(row).thresholds is None


def test_level_row_kind_is_optional() -> None:
    model_id = uuid4()
    tagged = MasteryLevelRow(
        id=uuid4(),
        mastery_model_id=model_id,
        label="Secure",
        display_order=3,
        kind="proficient",
    )
    untagged = MasteryLevelRow(
        id=uuid4(), mastery_model_id=model_id, label="Custom", display_order=5
    )
    assert _row_to_level(tagged).kind is LevelKind.PROFICIENT
    assert _row_to_level(untagged).kind is None


# ---- error translation ----


def test_operational_error_is_transient() -> None:
    with pytest.raises(PersistenceError) as exc_info:
        with translate_sqlalchemy_errors("insert snapshot"):
            raise OperationalError("INSERT", {}, Exception("connection reset"))
    assert exc_info.value.transient is True
    assert "insert snapshot failed: OperationalError" in str(exc_info.value)


def test_integrity_error_is_permanent() -> None:
    with pytest.raises(PersistenceError) as exc_info:
        with translate_sqlalchemy_errors("insert snapshot"):
            raise IntegrityError("INSERT", {}, Exception("duplicate key"))
    assert exc_info.value.transient is False
