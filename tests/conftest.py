"""Shared fixtures: in-memory SQLite, get_db override, ASGI test clients."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from fastapi import APIRouter, FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from models.account import Account, Address
from services.database import Base, enable_sqlite_foreign_keys, get_db


@pytest.fixture
async def test_engine():
    engine = enable_sqlite_foreign_keys(create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    ))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def client_for(test_session_factory):
    """Factory: wrap a FastAPI app or APIRouter in an httpx client on the test DB."""
    opened = []

    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    def _client_for(target):
        if isinstance(target, APIRouter):
            app = FastAPI()
            app.include_router(target)
        else:
            app = target
        app.dependency_overrides[get_db] = override_get_db
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        opened.append((app, client))
        return client

    yield _client_for

    for app, client in opened:
        await client.aclose()
        app.dependency_overrides.clear()


@pytest.fixture
async def client(client_for):
    """Client for the demo application."""
    from main import app
    return client_for(app)


@pytest.fixture
async def seed(test_db):
    """Two accounts (42 active, 7 inactive); 12 addresses for 42, 2 for 7."""
    test_db.add_all([
        Account(id=42, name="Alice", email="alice@example.com", active=True),
        Account(id=7, name="Bob", email="bob@example.com", active=False),
    ])
    await test_db.flush()
    for i in range(12):
        test_db.add(Address(account_id=42, street=f"{i} Main St", city="Paris" if i < 3 else "Lyon"))
    test_db.add_all([
        Address(account_id=7, street="1 Side St", city="Nice"),
        Address(account_id=7, street="2 Side St", city="Nice"),
    ])
    await test_db.commit()
    return test_db
