from design_intel.models.base import Base, get_db, get_engine, get_session_factory, init_db, utcnow
from design_intel.models.component import (
    Component,
    ComponentCategory,
    ComponentEmbedding,
    ComponentIndustry,
    ComponentTag,
    ComponentType,
    DesignStyle,
)
from design_intel.models.learning import (
    ComponentPerformance,
    ExtractedComponent,
    LearningInsight,
    LearningPattern,
    OnboardingSite,
    Placement,
    PromotionStatus,
    ValidationStatus,
)
from design_intel.models.task import TaskRecord

__all__ = [
    "Base", "get_db", "get_engine", "get_session_factory", "init_db", "utcnow",
    # Catalog
    "Component", "ComponentCategory", "ComponentEmbedding", "ComponentIndustry", "ComponentTag",
    "ComponentType", "DesignStyle",
    # Learning
    "ComponentPerformance", "ExtractedComponent", "LearningInsight", "LearningPattern",
    "OnboardingSite", "Placement", "PromotionStatus", "ValidationStatus",
    # Tasks
    "TaskRecord",
]
