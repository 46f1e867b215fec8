"""
Analysis service tests: AI results, fallbacks and gated endpoints.
"""
import json

import pytest

from pathwise.db.models.purchased_feature import PurchasedFeature
from pathwise.llm.provider import LLMProvider, LLMProviderError, LLMResponse, LLMTimeoutError
from pathwise.services.analysis_service import (
    AnalysisErr,
    AnalysisFallback,
    AnalysisOk,
    AnalysisService,
    competitiveness_band,
)
from tests.helpers import auth_headers, make_user


class FakeLLM(LLMProvider):
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = 0

    def chat(self, messages, temperature=0.3, max_tokens=None, json_mode=False):
        self.calls += 1
        if self.error:
            raise self.error
        return LLMResponse(content=self.content, model="fake")


def test_unconfigured_provider_falls_back():
    result = AnalysisService(None).analyze_resume("Five years of Python")
    assert isinstance(result, AnalysisFallback)
    assert result.reason == "provider_not_configured"
    assert result.data["overallScore"] == 75


@pytest.mark.parametrize("error,reason", [
    (LLMTimeoutError("slow"), "timeout"),
    (LLMProviderError("boom"), "provider_error"),
])
def test_provider_failures_fall_back(error, reason):
    result = AnalysisService(FakeLLM(error=error)).analyze_job_match("resume", "Title: Engineer")
    assert isinstance(result, AnalysisFallback)
    assert result.reason == reason
    assert result.data["competitivenessBand"] == "good"


@pytest.mark.parametrize("content", ["not json", json.dumps({"unexpected": True}), json.dumps([1, 2])])
def test_unusable_model_output_falls_back(content):
    result = AnalysisService(FakeLLM(content=content)).analyze_resume("resume text")
    assert isinstance(result, AnalysisFallback)
    assert result.reason == "invalid_response"


def test_job_match_adds_band():
    llm = FakeLLM(content=json.dumps({"overallMatch": 91, "strengths": []}))
    result = AnalysisService(llm).analyze_job_match("resume", "Title: Engineer")
    assert isinstance(result, AnalysisOk)
    assert result.data["competitivenessBand"] == "exceptional"


def test_empty_input_is_an_error_without_provider_call():
    llm = FakeLLM(content="{}")
    service = AnalysisService(llm)
    assert isinstance(service.analyze_resume("   "), AnalysisErr)
    assert isinstance(service.analyze_job_match("resume", ""), AnalysisErr)
    assert llm.calls == 0


@pytest.mark.parametrize("score,band", [(95, "exceptional"), (80, "strong"), (72, "good"),
                                        (60, "fair"), (55, "weak"), (10, "poor")])
def test_competitiveness_band(score, band):
    assert competitiveness_band(score) == band


def test_resume_endpoint_for_purchaser(client, db):
    user = make_user(db)
    db.add(PurchasedFeature(user_id=user.id, feature_key="resume_analysis"))
    db.commit()

    response = client.post(
        "/api/resumes/analyze",
        json={"resumeText": "Five years of Python", "targetRole": "Backend Engineer"},
        headers=auth_headers(db, user),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["source"] == "fallback"
    assert data["fallbackReason"] == "provider_not_configured"
    assert "overallScore" in data["analysis"]


def test_job_match_endpoint_for_subscriber(client, db):
    user = make_user(db, tier="paid")
    headers = auth_headers(db, user)

    response = client.post(
        "/api/jobs/match-analysis",
        json={"resumeText": "Python", "jobData": {"title": "Engineer", "company": "Acme"}},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["analysis"]["overallMatch"] == 75

    empty = client.post("/api/jobs/match-analysis", json={"resumeText": "Python", "jobData": {}}, headers=headers)
    assert empty.status_code == 400
    assert empty.json()["detail"]["error"] == "invalid_input"
