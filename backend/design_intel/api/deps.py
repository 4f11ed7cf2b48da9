"""Shared dependencies for the API routers. Tests override these via ``app.dependency_overrides``."""
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from design_intel.config import get_settings
from design_intel.models.base import get_db
from design_intel.services.catalog import CatalogStore
from design_intel.services.embeddings import EmbeddingIndex
from design_intel.services.learning import ContinuousLearningLoop
from design_intel.services.llm.client import SDKProviderClient
from design_intel.services.llm.registry import ProviderRegistry
from design_intel.services.trends import TrendAnalyzer


@lru_cache
def get_registry() -> ProviderRegistry:
    return ProviderRegistry.from_settings(get_settings())


@lru_cache
def get_provider_client() -> SDKProviderClient:
    return SDKProviderClient(get_settings())


def get_catalog(db: Session = Depends(get_db)) -> CatalogStore:
    return CatalogStore(db)


def get_index(db: Session = Depends(get_db)) -> EmbeddingIndex:
    return EmbeddingIndex(db)


def get_trends(db: Session = Depends(get_db)) -> TrendAnalyzer:
    return TrendAnalyzer(db)


def get_learning(db: Session = Depends(get_db)) -> ContinuousLearningLoop:
    return ContinuousLearningLoop(db)
