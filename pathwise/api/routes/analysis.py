"""
Gated AI analysis endpoints.

Access is enforced by require_feature before any provider call; a slow or
failing provider degrades to a default analysis instead of an error.
"""
import logging
from fastapi import APIRouter, Depends

from pathwise.api.deps import get_analysis_service
from pathwise.core.errors import ValidationError
from pathwise.core.feature_guard import require_feature
from pathwise.db.models.user import User
from pathwise.schemas.analysis import AnalysisResponse, JobMatchRequest, ResumeAnalysisRequest
from pathwise.services.analysis_service import AnalysisErr, AnalysisFallback, AnalysisResult, AnalysisService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Analysis"])

JOB_FIELDS = ("title", "company", "location", "description", "requirements")


def _to_response(result: AnalysisResult) -> AnalysisResponse:
    if isinstance(result, AnalysisErr):
        raise ValidationError(result.reason, code="invalid_input")
    return AnalysisResponse(
        analysis=result.data,
        source=result.source,
        fallback_reason=result.reason if isinstance(result, AnalysisFallback) else None,
    )


def job_text_from(job_data: dict) -> str:
    lines = []
    for field in JOB_FIELDS:
        value = job_data.get(field)
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        if value:
            lines.append(f"{field.capitalize()}: {value}")
    return "\n".join(lines)


@router.post("/resumes/analyze", response_model=AnalysisResponse)
def analyze_resume(
    payload: ResumeAnalysisRequest,
    user: User = Depends(require_feature("resume_analysis")),
    analysis_service: AnalysisService = Depends(get_analysis_service),
):
    result = analysis_service.analyze_resume(payload.resume_text, payload.target_role)
    logger.info(f"Resume analysis: user_id={user.id}, source={getattr(result, 'source', 'error')}")
    return _to_response(result)


@router.post("/jobs/match-analysis", response_model=AnalysisResponse)
def job_match_analysis(
    payload: JobMatchRequest,
    user: User = Depends(require_feature("job_match_assistant")),
    analysis_service: AnalysisService = Depends(get_analysis_service),
):
    result = analysis_service.analyze_job_match(payload.resume_text, job_text_from(payload.job_data))
    logger.info(f"Job match analysis: user_id={user.id}, source={getattr(result, 'source', 'error')}")
    return _to_response(result)
