"""
Structured extraction from free-text model output.

The language model is asked for labelled sections ("Confidence: 0.8",
"Behavior analysis: ...") and bullet lists. These helpers pull those fields out
with regular expressions and keyword line filters; every helper returns a usable
default when the text does not contain what it looks for.
"""

import re

CONFIDENCE_PATTERN = re.compile(r"confidence[^:]*:\s*([0-9.]+)", re.IGNORECASE)
BEHAVIOR_PATTERN = re.compile(r"behavior[^:]*:\s*([^.]+)", re.IGNORECASE)
CONCERN_PATTERN = re.compile(r"concern[^:]*:\s*([^.]+)", re.IGNORECASE)
RISK_PATTERN = re.compile(r"risk[^:]*:\s*([^.]+)", re.IGNORECASE)
ADVICE_PATTERN = re.compile(r"advice[^:]*:\s*([^.]+)", re.IGNORECASE)
BULLET_PREFIX = re.compile(r"^[•\-\d.]+\s*")

MAX_KEY_INSIGHTS = 5
MAX_LINES = 3


def strip_bullet(line: str) -> str:
    return BULLET_PREFIX.sub("", line.strip()).strip()


def _keyword_lines(text: str, keywords: tuple[str, ...], limit: int = MAX_LINES) -> list[str]:
    lines = [line for line in text.splitlines() if any(keyword in line.lower() for keyword in keywords)]
    return [strip_bullet(line) for line in lines[:limit]]


def extract_confidence(text: str) -> float | None:
    """The first ``confidence ...: <number>`` value, or None (also for unparsable numbers)."""
    match = CONFIDENCE_PATTERN.search(text)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def extract_key_insights(text: str, limit: int = MAX_KEY_INSIGHTS) -> list[str]:
    """Bullet lines (containing ``•`` or ``-``), prefixes stripped."""
    lines = [line for line in text.splitlines() if line.strip() and ("•" in line or "-" in line)]
    return [strip_bullet(line) for line in lines[:limit]]


def extract_behavior_analysis(text: str) -> str:
    match = BEHAVIOR_PATTERN.search(text)
    return match.group(1).strip() if match else "Analysis completed"


def extract_concerns(text: str) -> list[str]:
    match = CONCERN_PATTERN.search(text)
    return [match.group(1).strip()] if match else []


def extract_risk_assessment(text: str) -> str:
    match = RISK_PATTERN.search(text)
    return match.group(1).strip() if match else "Risk assessment completed"


def extract_recommended_actions(text: str) -> list[str]:
    lines = [line for line in text.splitlines() if "•" in line or "-" in line or "action" in line.lower()]
    return [strip_bullet(line) for line in lines[:MAX_LINES]]


def extract_potential_causes(text: str) -> list[str]:
    return _keyword_lines(text, ("cause", "reason"))


def extract_strengths(text: str) -> list[str]:
    return _keyword_lines(text, ("strength", "good", "excellent"))


def extract_improvements(text: str) -> list[str]:
    return _keyword_lines(text, ("improve", "better", "enhance"))


def extract_goals(text: str) -> list[str]:
    return _keyword_lines(text, ("goal", "target"))


def extract_advice(text: str) -> str:
    match = ADVICE_PATTERN.search(text)
    return match.group(1).strip() if match else "Continue monitoring your financial health"
