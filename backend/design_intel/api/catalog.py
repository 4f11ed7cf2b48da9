"""Catalog API routes: ingestion, filtered search, similarity and performance."""
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime

from design_intel.api.deps import get_catalog, get_index, get_learning
from design_intel.services.catalog import CatalogStore, ComponentInput, PerformanceInput
from design_intel.services.embeddings import EmbeddingIndex
from design_intel.services.ingestion import ComponentIngestor
from design_intel.services.learning import ContinuousLearningLoop

router = APIRouter()


# ============================================================================
# Pydantic Schemas
# ============================================================================

class ComponentResponse(BaseModel):
    id: str
    name: str
    type: str
    category: str
    style: str
    source: str
    description: Optional[str] = None
    html_code: Optional[str] = None
    css_code: Optional[str] = None
    js_code: Optional[str] = None
    preview_url: Optional[str] = None
    tags: List[str] = []
    industries: List[str] = []
    frameworks: List[str] = []
    complexity: int
    aesthetic_score: int
    performance_score: int
    conversion_rate: Optional[float] = None
    usage_count: int
    mobile_optimized: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SimilarComponentResponse(BaseModel):
    component: ComponentResponse
    similarity: float
    mode: str


class PerformanceResponse(BaseModel):
    id: int
    component_id: str
    site_id: str
    placement: str
    conversion_impact: Optional[float] = None
    ab_test_winner: Optional[bool] = None
    recorded_at: datetime
    component_conversion_rate: Optional[float] = None
    component_usage_count: int = 0


# ============================================================================
# Ingestion
# ============================================================================

@router.post("", response_model=ComponentResponse)
def ingest_component(
    data: ComponentInput,
    catalog: CatalogStore = Depends(get_catalog),
    index: EmbeddingIndex = Depends(get_index),
):
    """Insert or update a component and refresh its embedding."""
    return ComponentIngestor(catalog, index).ingest(data)


@router.post("/performance", response_model=PerformanceResponse)
def record_performance(
    data: PerformanceInput,
    learning: ContinuousLearningLoop = Depends(get_learning),
    catalog: CatalogStore = Depends(get_catalog),
):
    record = learning.record_performance(data)
    component = catalog.get(record.component_id)
    return PerformanceResponse(
        id=record.id,
        component_id=record.component_id,
        site_id=record.site_id,
        placement=record.placement,
        conversion_impact=record.conversion_impact,
        ab_test_winner=record.ab_test_winner,
        recorded_at=record.recorded_at,
        component_conversion_rate=component.conversion_rate,
        component_usage_count=component.usage_count,
    )


# ============================================================================
# Queries
# ============================================================================

@router.get("", response_model=List[ComponentResponse])
def search_components(
    type: Optional[str] = None,
    category: Optional[str] = None,
    style: Optional[str] = None,
    tags: List[str] = Query(default=[]),
    industries: List[str] = Query(default=[]),
    min_aesthetic_score: Optional[float] = None,
    min_conversion_rate: Optional[float] = None,
    limit: Optional[int] = None,
    catalog: CatalogStore = Depends(get_catalog),
):
    """Filtered search ordered by aesthetic score, then conversion rate."""
    filters: Dict[str, Any] = {
        "type": type,
        "category": category,
        "style": style,
        "tags": tags,
        "industries": industries,
        "min_aesthetic_score": min_aesthetic_score,
        "min_conversion_rate": min_conversion_rate,
    }
    filters = {key: value for key, value in filters.items() if value not in (None, [])}
    return catalog.search(filters, limit=limit)


@router.get("/top", response_model=List[ComponentResponse])
def top_performing(limit: int = 20, catalog: CatalogStore = Depends(get_catalog)):
    return catalog.top_performing(limit)


@router.get("/stats")
def catalog_stats(
    catalog: CatalogStore = Depends(get_catalog),
    index: EmbeddingIndex = Depends(get_index),
):
    return {"catalog": catalog.stats(), "embeddings": index.stats()}


@router.get("/search", response_model=List[ComponentResponse])
def search_by_text(
    q: str,
    type: Optional[str] = None,
    style: Optional[str] = None,
    min_aesthetic_score: Optional[float] = None,
    limit: int = 20,
    index: EmbeddingIndex = Depends(get_index),
):
    filters = {"type": type, "style": style, "min_aesthetic_score": min_aesthetic_score}
    filters = {key: value for key, value in filters.items() if value is not None}
    return index.search_by_text(q, filters, limit=limit)


@router.get("/by-style/{style}", response_model=List[ComponentResponse])
def components_by_style(style: str, limit: int = 15, index: EmbeddingIndex = Depends(get_index)):
    return index.components_by_style(style, limit=limit)


@router.get("/trending", response_model=List[ComponentResponse])
def trending_components(days: int = 7, limit: int = 20, index: EmbeddingIndex = Depends(get_index)):
    if days < 1:
        raise HTTPException(status_code=422, detail="days must be positive")
    return index.trending_components(days=days, limit=limit)


@router.get("/{component_id}", response_model=ComponentResponse)
def get_component(component_id: str, catalog: CatalogStore = Depends(get_catalog)):
    return catalog.get(component_id)


@router.get("/{component_id}/similar", response_model=List[SimilarComponentResponse])
def similar_components(
    component_id: str,
    k: int = 5,
    min_similarity: float = 0.7,
    index: EmbeddingIndex = Depends(get_index),
):
    hits = index.find_similar(component_id, k=k, min_similarity=min_similarity)
    return [
        SimilarComponentResponse(
            component=ComponentResponse.model_validate(hit.component),
            similarity=hit.similarity,
            mode=hit.mode,
        )
        for hit in hits
    ]
