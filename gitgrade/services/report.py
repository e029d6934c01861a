"""Response bodies for an analysis: free summary, status poll, paid full report."""
from datetime import datetime
from typing import Any

from gitgrade.models import AnalysisRecord, AnalysisStatus
from gitgrade.services.scoring import ScoreLevel

FREE_DEAL_BREAKERS = 3
FREE_STRENGTHS = 2


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _list(report: dict[str, Any], key: str) -> list[Any]:
    value = report.get(key)
    return value if isinstance(value, list) else []


def _report(record: AnalysisRecord) -> dict[str, Any]:
    return record.ai_analysis if isinstance(record.ai_analysis, dict) else {}


def score_level(record: AnalysisRecord, with_description: bool = False) -> dict[str, str]:
    level = ScoreLevel.from_score(record.overall_score)
    body = {"name": level.value, "label": level.label, "color": level.color}
    if with_description:
        body["description"] = level.description
    return body


def summary_view(record: AnalysisRecord) -> dict[str, Any]:
    """Unpaid completed records show 3 deal breakers, 2 strengths and no checklist."""
    body: dict[str, Any] = {
        "id": record.uuid,
        "username": record.github_username,
        "status": AnalysisStatus(record.status).value,
        "overall_score": record.overall_score,
        "score_level": score_level(record),
    }
    if record.status == AnalysisStatus.COMPLETED:
        report = _report(record)
        deal_breakers = _list(report, "deal_breakers")
        strengths = _list(report, "strengths")
        body.update(
            {
                "category_scores": record.category_scores,
                "summary": report.get("summary"),
                "first_impression": report.get("first_impression"),
                "deal_breakers": deal_breakers if record.is_paid else deal_breakers[:FREE_DEAL_BREAKERS],
                "strengths": strengths if record.is_paid else strengths[:FREE_STRENGTHS],
            }
        )
        if record.is_paid:
            body["improvement_checklist"] = _list(report, "improvement_checklist")
    body.update(
        {
            "is_paid": record.is_paid,
            "created_at": _iso(record.created_at),
            "completed_at": _iso(record.completed_at),
        }
    )
    return body


def status_view(record: AnalysisRecord) -> dict[str, Any]:
    status = AnalysisStatus(record.status)
    body: dict[str, Any] = {"id": record.uuid, "status": status.value, "progress": status.progress}
    if status == AnalysisStatus.COMPLETED:
        body["redirect"] = f"/analysis/{record.uuid}"
    elif status == AnalysisStatus.FAILED:
        body["error"] = record.error_message
    return body


def full_view(record: AnalysisRecord) -> dict[str, Any]:
    report = _report(record)
    return {
        "id": record.uuid,
        "username": record.github_username,
        "status": AnalysisStatus(record.status).value,
        "overall_score": record.overall_score,
        "score_level": score_level(record, with_description=True),
        "category_scores": record.category_scores,
        "summary": report.get("summary"),
        "first_impression": report.get("first_impression"),
        "recruiter_perspective": report.get("recruiter_perspective"),
        "categories": report.get("categories") or {},
        "deal_breakers": _list(report, "deal_breakers"),
        "strengths": _list(report, "strengths"),
        "top_projects_analysis": _list(report, "top_projects_analysis"),
        "improvement_checklist": _list(report, "improvement_checklist"),
        "github_data": record.github_data,
        "is_paid": record.is_paid,
        "created_at": _iso(record.created_at),
        "completed_at": _iso(record.completed_at),
    }
