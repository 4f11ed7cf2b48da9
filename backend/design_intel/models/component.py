"""Design component models - the global catalog and its embeddings."""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, ForeignKey, Float, Boolean
from sqlalchemy.orm import relationship
import enum

from design_intel.models.base import Base, utcnow


class ComponentType(str, enum.Enum):
    hero = "hero"
    button = "button"
    card = "card"
    form = "form"
    navigation = "navigation"
    footer = "footer"
    modal = "modal"
    gallery = "gallery"
    pricing = "pricing"
    testimonial = "testimonial"
    cta = "cta"
    layout = "layout"
    animation = "animation"
    loading = "loading"
    error = "error"
    chart = "chart"
    table = "table"
    list = "list"
    menu = "menu"
    breadcrumb = "breadcrumb"
    pagination = "pagination"
    slider = "slider"
    accordion = "accordion"
    tab = "tab"
    tooltip = "tooltip"
    badge = "badge"
    alert = "alert"
    progress = "progress"
    calendar = "calendar"
    search = "search"
    filter = "filter"
    social = "social"


class ComponentCategory(str, enum.Enum):
    layout = "layout"
    interaction = "interaction"
    display = "display"
    input = "input"
    feedback = "feedback"
    navigation = "navigation"
    media = "media"
    utility = "utility"


class DesignStyle(str, enum.Enum):
    modern = "modern"
    minimal = "minimal"
    glassmorphism = "glassmorphism"
    neumorphism = "neumorphism"
    gradient = "gradient"
    dark = "dark"
    light = "light"
    colorful = "colorful"
    monochrome = "monochrome"
    retro = "retro"
    futuristic = "futuristic"
    organic = "organic"
    geometric = "geometric"
    brutalist = "brutalist"
    elegant = "elegant"


class Component(Base):
    """A reusable design artifact in the global catalog. Never hard-deleted."""
    __tablename__ = "components"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)

    # Classification
    type = Column(String(40), nullable=False, index=True)
    category = Column(String(40), nullable=False, index=True)
    style = Column(String(40), nullable=False, index=True)
    source = Column(String(120), nullable=False, default="custom", index=True)

    # Structural payload (opaque)
    html_code = Column(Text, nullable=False, default="")
    css_code = Column(Text, nullable=False, default="")
    js_code = Column(Text, nullable=True)
    preview_url = Column(String(1000), nullable=True)
    description = Column(Text, nullable=False, default="")

    tags = Column(JSON, default=list)  # ["glass", "modern", ...]
    industries = Column(JSON, default=list)  # ["saas", "fintech", ...]
    frameworks = Column(JSON, default=list)  # ["react", "tailwind", ...]

    # Quality metrics
    complexity = Column(Integer, nullable=False, default=1)  # 1-10
    aesthetic_score = Column(Integer, nullable=False, default=50, index=True)  # 1-100
    performance_score = Column(Integer, nullable=False, default=50)  # 1-100
    conversion_rate = Column(Float, nullable=True, index=True)
    usage_count = Column(Integer, nullable=False, default=0)
    mobile_optimized = Column(Boolean, default=False)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    scraped_at = Column(DateTime, default=utcnow, nullable=True)

    # Relationships
    tag_rows = relationship("ComponentTag", cascade="all, delete-orphan")
    industry_rows = relationship("ComponentIndustry", cascade="all, delete-orphan")
    embedding = relationship(
        "ComponentEmbedding",
        uselist=False,
        back_populates="component",
        cascade="all, delete-orphan",
    )
    performance_records = relationship("ComponentPerformance", back_populates="component")


class ComponentTag(Base):
    """Relational index over Component.tags used by any-of tag filters."""
    __tablename__ = "component_tags"

    component_id = Column(String(64), ForeignKey("components.id"), primary_key=True)
    tag = Column(String(120), primary_key=True, index=True)


class ComponentIndustry(Base):
    """Relational index over Component.industries."""
    __tablename__ = "component_industries"

    component_id = Column(String(64), ForeignKey("components.id"), primary_key=True)
    industry = Column(String(120), primary_key=True, index=True)


class ComponentEmbedding(Base):
    """One vector per component. Owned by the embedding index."""
    __tablename__ = "component_embeddings"

    component_id = Column(String(64), ForeignKey("components.id"), primary_key=True)

    # JSON float array; a native vector column may be added by migration
    embedding_text = Column(Text, nullable=False)
    dimension = Column(Integer, nullable=False)
    content_hash = Column(String(64), nullable=False)

    # Snapshot: {"type": ..., "style": ..., "tags": [...], "aesthetic_score": ...}
    metadata_json = Column(JSON, default=dict)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    component = relationship("Component", back_populates="embedding")
