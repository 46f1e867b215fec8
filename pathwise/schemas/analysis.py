"""
Pydantic schemas for gated analysis endpoints.
"""
from typing import Any, Dict, Optional
from pydantic import Field

from pathwise.schemas.base import CamelModel


class ResumeAnalysisRequest(CamelModel):
    resume_text: str = Field(..., description="Plain text of the resume")
    target_role: Optional[str] = Field(None, max_length=200)


class JobMatchRequest(CamelModel):
    resume_text: str = Field(..., description="Plain text of the resume")
    job_data: Dict[str, Any] = Field(..., description="Job posting: title, company, description, location")


class AnalysisResponse(CamelModel):
    analysis: Dict[str, Any]
    source: str = Field(..., description="ai or fallback")
    fallback_reason: Optional[str] = None
