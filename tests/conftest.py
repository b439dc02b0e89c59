# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from dental_scribe.database import Base, get_db
from dental_scribe.deps import Settings, get_settings
from dental_scribe.main import app
from dental_scribe.models import database as db_models  # noqa: F401  registers tables
from dental_scribe.routers.recordings import limiter
from dental_scribe.services.llm import RefertoGenerator
from dental_scribe.services.storage import StorageManager
from dental_scribe.services.transcription import TranscriptionService
from tests.fakes import FakeOpenAI, sample_referto


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        upload_dir=str(tmp_path / "uploads"),
        storage_backend="local",
        openai_api_key="test-key",
    )


@pytest.fixture
async def engine(settings):
    engine = create_async_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage(settings):
    return StorageManager(base_path=settings.upload_dir)


@pytest.fixture
def openai_client():
    """Default fake: a transcript and one report with an embedded chart."""
    return FakeOpenAI(chat_replies=[sample_referto(with_chart=True)])


@pytest.fixture
async def client(settings, session_factory, storage, openai_client):
    """HTTP client against the app with a temporary database and storage."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.state.storage_manager = storage
    app.state.transcription_service = TranscriptionService(settings, client=openai_client)
    app.state.referto_generator = RefertoGenerator(settings, client=openai_client)
    limiter.reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()
