"""Continuous-learning models: onboarded sites, performance observations, candidates and insights."""
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    JSON,
    Text,
    ForeignKey,
    Float,
    Boolean,
    Enum,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
import enum

from design_intel.models.base import Base, utcnow


class Placement(str, enum.Enum):
    hero = "hero"
    above_fold = "above_fold"
    below_fold = "below_fold"
    footer = "footer"


class PromotionStatus(enum.Enum):
    candidate = "candidate"
    promoted = "promoted"
    rejected = "rejected"


class ValidationStatus(enum.Enum):
    pending = "pending"
    validated = "validated"
    rejected = "rejected"


class OnboardingSite(Base):
    """A customer site whose components and performance feed the learning loop."""
    __tablename__ = "onboarding_sites"

    id = Column(String(64), primary_key=True)
    domain = Column(String(255), nullable=False)
    industry = Column(String(120), nullable=False, index=True)
    business_type = Column(String(40), nullable=False, default="startup")
    primary_goal = Column(String(40), nullable=False, default="conversion")

    initial_conversion_rate = Column(Float, nullable=True)
    bounce_rate = Column(Float, nullable=True)
    page_load_time = Column(Float, nullable=True)
    mobile_score = Column(Integer, nullable=True)
    accessibility_score = Column(Integer, nullable=True)

    components_extracted = Column(Integer, nullable=False, default=0)
    analyzed_at = Column(DateTime, default=utcnow, nullable=False)


class ComponentPerformance(Base):
    """Observed effect of a component at one site placement. Unique per key, last write wins."""
    __tablename__ = "component_performance"
    __table_args__ = (
        UniqueConstraint("component_id", "site_id", "placement", name="uq_component_site_placement"),
    )

    id = Column(Integer, primary_key=True, index=True)
    component_id = Column(String(64), ForeignKey("components.id"), nullable=False, index=True)
    site_id = Column(String(64), nullable=False, index=True)
    placement = Column(String(20), nullable=False)

    conversion_impact = Column(Float, nullable=True)  # percentage change
    click_through_rate = Column(Float, nullable=True)
    time_on_element = Column(Float, nullable=True)
    scroll_depth_at_element = Column(Float, nullable=True)
    interaction_rate = Column(Float, nullable=True)

    # A/B test statistics
    ab_variant_a_performance = Column(Float, nullable=True)
    ab_variant_b_performance = Column(Float, nullable=True)
    ab_test_winner = Column(Boolean, nullable=True)
    ab_test_confidence = Column(Float, nullable=True)
    ab_test_sample_size = Column(Integer, nullable=True)

    recorded_at = Column(DateTime, default=utcnow, nullable=False)

    component = relationship("Component", back_populates="performance_records")


class ExtractedComponent(Base):
    """Site-extracted candidate awaiting a promotion decision. Immutable once decided."""
    __tablename__ = "extracted_components"

    id = Column(String(64), primary_key=True)
    site_id = Column(String(64), nullable=False, index=True)

    original_html = Column(Text, nullable=False)
    original_css = Column(Text, nullable=False)
    original_js = Column(Text, nullable=True)
    cleaned_html = Column(Text, nullable=False, default="")
    cleaned_css = Column(Text, nullable=False, default="")
    cleaned_js = Column(Text, nullable=False, default="")

    component_type = Column(String(40), nullable=False)
    performance_score = Column(Integer, nullable=False)
    aesthetic_score = Column(Integer, nullable=False)
    uniqueness_score = Column(Integer, nullable=False)

    promotion_status = Column(Enum(PromotionStatus), default=PromotionStatus.candidate, nullable=False)
    promoted_component_id = Column(String(64), ForeignKey("components.id"), nullable=True)
    decided_at = Column(DateTime, nullable=True)

    extracted_at = Column(DateTime, default=utcnow, nullable=False)


class LearningInsight(Base):
    """Derived recommendation. Only validation_status changes after creation."""
    __tablename__ = "learning_insights"

    id = Column(Integer, primary_key=True, index=True)
    insight_type = Column(String(40), nullable=False, index=True)
    confidence_score = Column(Float, nullable=False)  # 0-100
    impact_score = Column(Float, nullable=False)  # 0-100
    description = Column(Text, nullable=False)
    actionable_recommendation = Column(Text, nullable=False)
    data_points = Column(Integer, nullable=False, default=1)

    # {"industry": ..., "component_type": ..., "placement": ...}
    subject_json = Column(JSON, default=dict)

    validation_status = Column(Enum(ValidationStatus), default=ValidationStatus.pending, nullable=False)
    discovered_at = Column(DateTime, default=utcnow, nullable=False)


class LearningPattern(Base):
    """Cross-site pattern aggregated from performance data."""
    __tablename__ = "learning_patterns"

    id = Column(Integer, primary_key=True, index=True)
    pattern_name = Column(String(255), nullable=False, unique=True)
    industry = Column(String(120), nullable=True, index=True)
    component_types = Column(JSON, default=list)
    sites_observed = Column(Integer, nullable=False, default=1)
    avg_improvement = Column(Float, nullable=True)
    confidence_level = Column(Float, nullable=True)
    pattern_data = Column(JSON, default=dict)

    discovered_at = Column(DateTime, default=utcnow, nullable=False)
    last_updated = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
