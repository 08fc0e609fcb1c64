"""Engine and session helpers on an in-memory SQLite database."""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from billing_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from billing_kernel.models.billing_entity import BillingEntity, BillingEntityType


@pytest.fixture
def memory_engine():
    reset_engine()
    engine = init_engine_from_url("sqlite://")
    create_tables(engine)
    yield engine
    reset_engine()


def _studio(name: str) -> BillingEntity:
    return BillingEntity(
        issuer_id=uuid4(),
        entity_name=name,
        entity_type=BillingEntityType.STUDIO.value,
        location_match=[name],
        currency="EUR",
        created_by_id=uuid4(),
    )


def _count() -> int:
    with get_session() as session:
        return session.scalar(select(func.count()).select_from(BillingEntity))


def test_uninitialized_engine_raises():
    reset_engine()
    with pytest.raises(RuntimeError, match="init_engine_from_url"):
        get_engine()
    with pytest.raises(RuntimeError):
        get_session_factory()


def test_session_scope_commits(memory_engine):
    with session_scope() as session:
        session.add(_studio("Yoga Loft"))
    assert _count() == 1


def test_session_scope_rolls_back_on_error(memory_engine):
    with pytest.raises(ValueError):
        with session_scope() as session:
            session.add(_studio("Yoga Loft"))
            session.flush()
            raise ValueError("abort")
    assert _count() == 0


def test_objects_stay_loaded_after_commit(memory_engine):
    with session_scope() as session:
        studio = _studio("Yoga Loft")
        session.add(studio)
    assert studio.entity_name == "Yoga Loft"


def test_foreign_keys_enabled(memory_engine):
    with memory_engine.connect() as conn:
        assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1
