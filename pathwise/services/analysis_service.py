"""
Resume and job-match analysis with an explicit fallback.

Every call returns one of:
- AnalysisOk: the model answered with usable JSON
- AnalysisFallback: the provider was missing, slow, failing or unparseable;
  a default analysis is returned together with the reason
- AnalysisErr: the input itself was unusable
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pathwise.core.config import OPENAI_API_KEY
from pathwise.llm.openai_provider import OpenAIProvider
from pathwise.llm.provider import LLMProvider, LLMProviderError, LLMTimeoutError

logger = logging.getLogger(__name__)

MAX_INPUT_CHARS = 20000
FALLBACK_SCORE = 75


@dataclass(frozen=True)
class AnalysisOk:
    data: Dict[str, Any]
    source: str = "ai"


@dataclass(frozen=True)
class AnalysisFallback:
    data: Dict[str, Any]
    reason: str
    source: str = "fallback"


@dataclass(frozen=True)
class AnalysisErr:
    reason: str


AnalysisResult = Union[AnalysisOk, AnalysisFallback, AnalysisErr]


def competitiveness_band(score: int) -> str:
    if score >= 90:
        return "exceptional"
    if score >= 80:
        return "strong"
    if score >= 70:
        return "good"
    if score >= 60:
        return "fair"
    if score >= 50:
        return "weak"
    return "poor"


def default_resume_analysis() -> Dict[str, Any]:
    return {
        "overallScore": FALLBACK_SCORE,
        "sectionScores": {
            "skills": FALLBACK_SCORE,
            "experience": FALLBACK_SCORE,
            "keywords": FALLBACK_SCORE,
            "education": FALLBACK_SCORE,
        },
        "strengths": ["Resume received and parsed successfully"],
        "gaps": [],
        "recommendations": [
            "Quantify achievements with concrete metrics",
            "Mirror keywords from the roles you are targeting",
            "Keep each bullet focused on impact rather than duties",
        ],
    }


def default_job_match_analysis() -> Dict[str, Any]:
    return {
        "overallMatch": FALLBACK_SCORE,
        "competitivenessBand": competitiveness_band(FALLBACK_SCORE),
        "strengths": ["Your background overlaps with several requirements of this role"],
        "concerns": ["A detailed comparison is temporarily unavailable"],
        "skillsAnalysis": {"strongMatches": [], "partialMatches": [], "missingSkills": []},
        "recommendations": [
            "Tailor your resume summary to the job title",
            "Highlight the projects closest to the job's core responsibilities",
        ],
        "nextSteps": [
            "Review the posting's required skills against your resume",
            "Prepare two stories that show the most relevant experience",
        ],
    }


RESUME_PROMPT = """Analyze this resume{target} and respond with a JSON object with keys:
"overallScore" (0-100), "sectionScores" (object with "skills", "experience", "keywords",
"education", each 0-100), "strengths" (list of strings), "gaps" (list of strings),
"recommendations" (list of strings, most important first).

Resume:
{resume}"""

JOB_MATCH_PROMPT = """Compare this candidate resume with the job posting and respond with a JSON
object with keys: "overallMatch" (1-100), "strengths" (list), "concerns" (list),
"skillsAnalysis" (object with "strongMatches", "partialMatches", "missingSkills" lists),
"recommendations" (list), "nextSteps" (list).

Resume:
{resume}

Job posting:
{job}"""


class AnalysisService:
    """Runs analysis prompts through an LLMProvider; provider is None when unconfigured."""

    def __init__(self, provider: Optional[LLMProvider] = None):
        self.provider = provider
        if provider is None:
            logger.info("AI provider not configured - analyses will use fallback results")

    def _run(self, prompt: str, default: Dict[str, Any], required_key: str) -> AnalysisResult:
        if self.provider is None:
            return AnalysisFallback(default, reason="provider_not_configured")

        try:
            response = self.provider.chat(
                [
                    {"role": "system", "content": "You are an expert career coach. Reply with JSON only."},
                    {"role": "user", "content": prompt},
                ],
                json_mode=True,
            )
        except LLMTimeoutError:
            return AnalysisFallback(default, reason="timeout")
        except LLMProviderError as e:
            logger.warning(f"AI analysis failed, using fallback: {e}")
            return AnalysisFallback(default, reason="provider_error")

        try:
            data = json.loads(response.content)
        except json.JSONDecodeError:
            logger.warning("AI analysis returned invalid JSON, using fallback")
            return AnalysisFallback(default, reason="invalid_response")
        if not isinstance(data, dict) or required_key not in data:
            logger.warning(f"AI analysis missing {required_key!r}, using fallback")
            return AnalysisFallback(default, reason="invalid_response")
        return AnalysisOk(data)

    def analyze_resume(self, resume_text: str, target_role: Optional[str] = None) -> AnalysisResult:
        resume_text = (resume_text or "").strip()
        if not resume_text:
            return AnalysisErr("Resume text is required")

        target = f" for the target role {target_role}" if target_role else ""
        prompt = RESUME_PROMPT.format(target=target, resume=resume_text[:MAX_INPUT_CHARS])
        return self._run(prompt, default_resume_analysis(), "overallScore")

    def analyze_job_match(self, resume_text: str, job_text: str) -> AnalysisResult:
        resume_text = (resume_text or "").strip()
        job_text = (job_text or "").strip()
        if not resume_text:
            return AnalysisErr("No resume found. Please provide your resume text.")
        if not job_text:
            return AnalysisErr("Job data is required")

        prompt = JOB_MATCH_PROMPT.format(resume=resume_text[:MAX_INPUT_CHARS], job=job_text[:MAX_INPUT_CHARS])
        result = self._run(prompt, default_job_match_analysis(), "overallMatch")
        if isinstance(result, AnalysisOk):
            score = result.data.get("overallMatch")
            if isinstance(score, (int, float)):
                result.data["competitivenessBand"] = competitiveness_band(int(score))
        return result


def build_analysis_service() -> AnalysisService:
    if not OPENAI_API_KEY:
        return AnalysisService(None)
    return AnalysisService(OpenAIProvider(api_key=OPENAI_API_KEY))
