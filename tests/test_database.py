from __future__ import annotations

import asyncio

from sqlalchemy import create_engine, inspect

from app.database import Database


def test_create_all_builds_every_table(tmp_path) -> None:
    """Creating the schema on an empty database should add all tables."""

    database_path = tmp_path / "cineloop.db"
    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        tables = set(inspector.get_table_names())
        follow_constraints = inspector.get_unique_constraints("follows")
        interaction_indexes = inspector.get_indexes("interactions")
    finally:
        inspector_engine.dispose()

    assert {
        "users",
        "titles",
        "posts",
        "interactions",
        "follows",
        "lists",
        "recommendations",
        "reports",
    } <= tables
    assert any(
        set(constraint["column_names"]) == {"follower_id", "following_id"}
        for constraint in follow_constraints
    )
    assert any(
        index["unique"] and index["column_names"] == ["user_id", "post_id", "type"]
        for index in interaction_indexes
    )


def test_create_all_is_idempotent(tmp_path) -> None:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'again.db'}")

    async def runner() -> None:
        await database.create_all()
        await database.create_all()
        await database.dispose()

    asyncio.run(runner())
