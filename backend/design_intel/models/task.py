"""Task audit trail for provider executions (append-only)."""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, Float, Boolean

from design_intel.models.base import Base, utcnow


class TaskRecord(Base):
    __tablename__ = "task_records"

    id = Column(String(64), primary_key=True)
    task_type = Column(String(40), nullable=False, index=True)
    priority = Column(String(20), nullable=False)
    industry = Column(String(120), nullable=True)

    provider_name = Column(String(120), nullable=False, index=True)
    model = Column(String(255), nullable=False)
    prompt = Column(Text, nullable=False)

    result_json = Column(JSON, nullable=True)
    suggestions_json = Column(JSON, default=list)

    cost = Column(Float, nullable=False, default=0.0)
    response_time_ms = Column(Integer, nullable=False, default=0)
    estimated_tokens = Column(Integer, nullable=False, default=0)
    success = Column(Boolean, nullable=False, default=False)
    error_class = Column(String(120), nullable=True)
    error_message = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
