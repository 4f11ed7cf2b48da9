"""Continuous-learning API routes: sites, candidates and insights."""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from design_intel.api.deps import get_learning
from design_intel.models import ValidationStatus
from design_intel.services.learning import ContinuousLearningLoop, SiteInput

router = APIRouter()


# ============================================================================
# Pydantic Schemas
# ============================================================================

class SiteResponse(BaseModel):
    id: str
    domain: str
    industry: str
    business_type: str
    primary_goal: str
    initial_conversion_rate: Optional[float] = None
    components_extracted: int
    analyzed_at: datetime

    class Config:
        from_attributes = True


class CandidateCreate(BaseModel):
    site_id: str = Field(min_length=1)
    html: str = ""
    css: str = ""
    js: Optional[str] = None


class CandidateResponse(BaseModel):
    id: str
    site_id: str
    component_type: str
    aesthetic_score: int
    performance_score: int
    uniqueness_score: int
    promotion_status: str
    promoted_component_id: Optional[str] = None
    decided_at: Optional[datetime] = None
    extracted_at: datetime


class InsightResponse(BaseModel):
    id: Optional[int] = None
    insight_type: str
    confidence_score: float
    impact_score: float
    description: str
    actionable_recommendation: str
    data_points: int
    subject: Dict[str, Any] = Field(default_factory=dict)
    validation_status: str


class InsightValidationUpdate(BaseModel):
    status: ValidationStatus


def _candidate_response(candidate) -> CandidateResponse:
    return CandidateResponse(
        id=candidate.id,
        site_id=candidate.site_id,
        component_type=candidate.component_type,
        aesthetic_score=candidate.aesthetic_score,
        performance_score=candidate.performance_score,
        uniqueness_score=candidate.uniqueness_score,
        promotion_status=candidate.promotion_status.value,
        promoted_component_id=candidate.promoted_component_id,
        decided_at=candidate.decided_at,
        extracted_at=candidate.extracted_at,
    )


def _insight_response(insight) -> InsightResponse:
    return InsightResponse(
        id=insight.id,
        insight_type=insight.insight_type,
        confidence_score=insight.confidence_score,
        impact_score=insight.impact_score,
        description=insight.description,
        actionable_recommendation=insight.actionable_recommendation,
        data_points=insight.data_points,
        subject=insight.subject_json or {},
        validation_status=(insight.validation_status or ValidationStatus.pending).value,
    )


# ============================================================================
# Sites
# ============================================================================

@router.post("/sites", response_model=SiteResponse)
def onboard_site(data: SiteInput, learning: ContinuousLearningLoop = Depends(get_learning)):
    return learning.onboard_site(data)


@router.get("/sites/{site_id}", response_model=SiteResponse)
def get_site(site_id: str, learning: ContinuousLearningLoop = Depends(get_learning)):
    return learning.get_site(site_id)


# ============================================================================
# Candidates
# ============================================================================

@router.post("/candidates", response_model=CandidateResponse)
def extract_candidate(data: CandidateCreate, learning: ContinuousLearningLoop = Depends(get_learning)):
    """Score an extracted payload; promotes automatically when it clears the thresholds."""
    if not data.html.strip() and not data.css.strip():
        raise HTTPException(status_code=422, detail="Candidate needs html or css")
    candidate = learning.extract_candidate(data.site_id, data.html, data.css, data.js)
    return _candidate_response(candidate)


@router.post("/candidates/{candidate_id}:promote", response_model=CandidateResponse)
def promote_candidate(candidate_id: str, learning: ContinuousLearningLoop = Depends(get_learning)):
    learning.promote_candidate(candidate_id)
    return _candidate_response(learning.get_candidate(candidate_id))


@router.post("/candidates/{candidate_id}:reject", response_model=CandidateResponse)
def reject_candidate(candidate_id: str, learning: ContinuousLearningLoop = Depends(get_learning)):
    return _candidate_response(learning.reject_candidate(candidate_id))


# ============================================================================
# Insights
# ============================================================================

@router.post("/insights:generate", response_model=List[InsightResponse])
def generate_insights(persist: bool = True, learning: ContinuousLearningLoop = Depends(get_learning)):
    return [_insight_response(insight) for insight in learning.generate_insights(persist=persist)]


@router.get("/insights", response_model=List[InsightResponse])
def list_insights(
    status: Optional[ValidationStatus] = None,
    limit: int = 50,
    learning: ContinuousLearningLoop = Depends(get_learning),
):
    return [_insight_response(insight) for insight in learning.list_insights(status=status, limit=limit)]


@router.patch("/insights/{insight_id}", response_model=InsightResponse)
def set_insight_validation(
    insight_id: int,
    data: InsightValidationUpdate,
    learning: ContinuousLearningLoop = Depends(get_learning),
):
    return _insight_response(learning.set_insight_validation(insight_id, data.status))


@router.get("/stats")
def learning_stats(learning: ContinuousLearningLoop = Depends(get_learning)):
    return learning.learning_stats()
