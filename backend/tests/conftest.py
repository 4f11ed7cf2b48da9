import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from design_intel.config import Settings
from design_intel.models import Base


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        embedding_backend="hash",
        embedding_dimension=64,
        vector_search_enabled=True,
        llm_providers_json="",
        provider_default_timeout_seconds=5.0,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def component_data():
    def _build(**overrides):
        data = {
            "name": "Glass Hero",
            "type": "hero",
            "category": "layout",
            "style": "glassmorphism",
            "description": "Frosted hero section",
            "html_code": "<section class='hero'></section>",
            "css_code": ".hero { display: flex; }",
            "tags": ["glass", "hero"],
            "industries": ["saas"],
            "aesthetic_score": 80,
            "performance_score": 70,
        }
        data.update(overrides)
        return data

    return _build
