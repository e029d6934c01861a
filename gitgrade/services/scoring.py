"""Weighted profile score from the AI category scores. Pure functions, no I/O."""
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any


class ScoreCategory(str, Enum):
    PROFILE_COMPLETENESS = "profile_completeness"
    PROJECT_QUALITY = "project_quality"
    CONTRIBUTION_CONSISTENCY = "contribution_consistency"
    TECHNICAL_SIGNALS = "technical_signals"
    COMMUNITY_ENGAGEMENT = "community_engagement"

    @property
    def weight(self) -> Decimal:
        return WEIGHTS[self]

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def short_key(self) -> str:
        return SHORT_KEYS[self]

    @property
    def description(self) -> str:
        return DESCRIPTIONS[self]


# Decimal so 0.15 * 50 is exactly 7.5 before rounding
WEIGHTS: dict[ScoreCategory, Decimal] = {
    ScoreCategory.PROFILE_COMPLETENESS: Decimal("0.15"),
    ScoreCategory.PROJECT_QUALITY: Decimal("0.30"),
    ScoreCategory.CONTRIBUTION_CONSISTENCY: Decimal("0.20"),
    ScoreCategory.TECHNICAL_SIGNALS: Decimal("0.20"),
    ScoreCategory.COMMUNITY_ENGAGEMENT: Decimal("0.15"),
}

# Column suffixes on AnalysisRecord (profile_score, projects_score, ...)
SHORT_KEYS: dict[ScoreCategory, str] = {
    ScoreCategory.PROFILE_COMPLETENESS: "profile",
    ScoreCategory.PROJECT_QUALITY: "projects",
    ScoreCategory.CONTRIBUTION_CONSISTENCY: "consistency",
    ScoreCategory.TECHNICAL_SIGNALS: "technical",
    ScoreCategory.COMMUNITY_ENGAGEMENT: "community",
}

DESCRIPTIONS: dict[ScoreCategory, str] = {
    ScoreCategory.PROFILE_COMPLETENESS: "How complete and professional your profile looks",
    ScoreCategory.PROJECT_QUALITY: "Quality of your repositories, READMEs, and documentation",
    ScoreCategory.CONTRIBUTION_CONSISTENCY: "How active and consistent your contributions are",
    ScoreCategory.TECHNICAL_SIGNALS: "Technical indicators like language diversity and best practices",
    ScoreCategory.COMMUNITY_ENGAGEMENT: "Involvement in the open-source community",
}


class ScoreLevel(str, Enum):
    EXCEPTIONAL = "exceptional"
    STRONG = "strong"
    GOOD = "good"
    AVERAGE = "average"
    BELOW_AVERAGE = "below_average"
    POOR = "poor"

    @classmethod
    def from_score(cls, score: int | None) -> "ScoreLevel":
        if score is None:
            return cls.POOR
        for threshold, level in _LEVEL_THRESHOLDS:
            if score >= threshold:
                return level
        return cls.POOR

    @property
    def label(self) -> str:
        return _LEVEL_INFO[self][0]

    @property
    def color(self) -> str:
        return _LEVEL_INFO[self][1]

    @property
    def description(self) -> str:
        return _LEVEL_INFO[self][2]


_LEVEL_THRESHOLDS = [
    (90, ScoreLevel.EXCEPTIONAL),
    (80, ScoreLevel.STRONG),
    (70, ScoreLevel.GOOD),
    (60, ScoreLevel.AVERAGE),
    (50, ScoreLevel.BELOW_AVERAGE),
]

_LEVEL_INFO = {
    ScoreLevel.EXCEPTIONAL: ("Exceptional", "#22c55e", "Top-tier profile that stands out to recruiters"),
    ScoreLevel.STRONG: ("Strong", "#84cc16", "Well-maintained profile with good presence"),
    ScoreLevel.GOOD: ("Good", "#eab308", "Solid profile with room for improvement"),
    ScoreLevel.AVERAGE: ("Average", "#f97316", "Standard profile, needs attention"),
    ScoreLevel.BELOW_AVERAGE: ("Below Average", "#ef4444", "Profile needs significant improvements"),
    ScoreLevel.POOR: ("Needs Work", "#dc2626", "Major issues that could hurt job prospects"),
}


def _numeric_score(value: Any) -> int:
    """AI scores may arrive as int, float or numeric string; anything else counts as 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return 0
    try:
        return int(float(value.strip()) if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return 0


def category_score(categories: dict[str, Any] | None, category: ScoreCategory) -> int:
    data = (categories or {}).get(category.value)
    if not isinstance(data, dict):
        return 0
    return normalize_score(_numeric_score(data.get("score")))


def normalize_score(score: int | float) -> int:
    return int(max(0, min(100, score)))


def round_half_away_from_zero(value: Decimal) -> int:
    # Decimal's ROUND_HALF_UP rounds ties away from zero; builtin round() would give 70 for 70.5
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_overall_score(categories: dict[str, Any] | None) -> int:
    weighted_sum = Decimal(0)
    for category, weight in WEIGHTS.items():
        weighted_sum += weight * category_score(categories, category)
    return round_half_away_from_zero(weighted_sum)


def extract_category_scores(categories: dict[str, Any] | None) -> dict[str, int]:
    """Five category scores keyed profile/projects/consistency/technical/community."""
    return {category.short_key: category_score(categories, category) for category in ScoreCategory}


def calculate_trend(history: list[int]) -> str:
    if len(history) < 2:
        return "stable"
    recent = history[-3:]
    change = sum(recent) / len(recent) - history[0]
    if change > 5:
        return "improving"
    if change < -5:
        return "declining"
    return "stable"


def category_info() -> dict[str, dict[str, Any]]:
    return {
        category.value: {
            "label": category.label,
            "weight": float(category.weight),
            "description": category.description,
        }
        for category in ScoreCategory
    }
