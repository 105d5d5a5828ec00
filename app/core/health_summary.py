import re
import logging
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional

# Logger setup
logger = logging.getLogger(__name__)

MAX_LATEST_METRICS = 15
MAX_TRENDS = 10
MAX_RISK_CONCERNS = 3

ABNORMAL_STATUSES = ("high", "low", "critical")

RISK_LEVEL_PATTERN = re.compile(r"overall risk level\W*(low|moderate|elevated|high)", re.IGNORECASE)
CONCERN_SECTIONS = (
    re.compile(r"immediate concerns.*?\n([\s\S]*?)(?=\n##|\n---|\n\*\*|$)", re.IGNORECASE),
    re.compile(r"moderate concerns.*?\n([\s\S]*?)(?=\n##|\n---|\n\*\*|$)", re.IGNORECASE),
)


class MetricEntry(NamedTuple):
    name: str
    value: str
    unit: str
    status: str
    date: datetime


class Trend(NamedTuple):
    name: str
    earliest: str
    latest: str
    unit: str
    direction: str  # improving, worsening or stable


def format_date(date: datetime) -> str:
    """Dates as "Mon D, YYYY"."""
    return f"{date.strftime('%b')} {date.day}, {date.year}"


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + "..."


def _to_float(value: str) -> Optional[float]:
    match = re.match(r"\s*(-?[0-9]+(?:\.[0-9]+)?)", value)
    return float(match.group(1)) if match else None


def collect_metrics(reports: List[Dict[str, Any]]) -> List[MetricEntry]:
    entries = []
    for report in reports:
        data = report.get("structured_data")
        if not isinstance(data, dict) or not isinstance(data.get("metrics"), list):
            continue
        for metric in data["metrics"]:
            if not isinstance(metric, dict) or not metric.get("name") or not metric.get("value"):
                continue
            entries.append(MetricEntry(
                name=str(metric["name"]),
                value=str(metric["value"]),
                unit=str(metric.get("unit") or ""),
                status=str(metric.get("status") or "normal"),
                date=report["created_at"]
            ))
    return entries


def latest_by_name(entries: List[MetricEntry]) -> Dict[str, MetricEntry]:
    """Most recent entry per metric name, case-insensitive, in first-seen order."""
    latest: Dict[str, MetricEntry] = {}
    for entry in entries:
        key = entry.name.lower()
        if key not in latest or entry.date > latest[key].date:
            latest[key] = entry
    return latest


def trend_direction(earliest: MetricEntry, latest: MetricEntry, diff: float) -> str:
    if abs(diff) < 0.01:
        return "stable"
    if latest.status == "normal" and earliest.status in ABNORMAL_STATUSES:
        return "improving"
    if latest.status in ABNORMAL_STATUSES and earliest.status == "normal":
        return "worsening"
    if latest.status == "normal" and earliest.status == "normal":
        return "stable"
    # Both abnormal: moving up is good only when the value is low
    if diff > 0:
        return "improving" if latest.status == "low" else "worsening"
    return "improving" if latest.status == "high" else "worsening"


def compute_trends(entries: List[MetricEntry]) -> List[Trend]:
    """Compare earliest and latest value for metrics with two or more numeric points."""
    by_name: Dict[str, List[MetricEntry]] = {}
    for entry in entries:
        by_name.setdefault(entry.name.lower(), []).append(entry)

    trends = []
    for group in by_name.values():
        if len(group) < 2:
            continue

        group = sorted(group, key=lambda e: e.date)
        earliest, latest = group[0], group[-1]
        earliest_value = _to_float(earliest.value)
        latest_value = _to_float(latest.value)
        if earliest_value is None or latest_value is None:
            continue

        trends.append(Trend(
            name=latest.name,
            earliest=earliest.value,
            latest=latest.value,
            unit=latest.unit,
            direction=trend_direction(earliest, latest, latest_value - earliest_value)
        ))

    return trends


def extract_risk_level(risk_text: str) -> Optional[str]:
    match = RISK_LEVEL_PATTERN.search(risk_text)
    return match.group(1).capitalize() if match else None


def extract_key_concerns(risk_text: str, max_count: int = MAX_RISK_CONCERNS) -> List[str]:
    concerns = []
    for pattern in CONCERN_SECTIONS:
        match = pattern.search(risk_text)
        if not match:
            continue
        for bullet in re.findall(r"^[-*]\s+(.+)$", match.group(1), re.MULTILINE):
            text = bullet.strip()
            lowered = text.lower()
            if not text or "no immediate" in lowered or "none identified" in lowered:
                continue
            concerns.append(truncate(text, 60))
            if len(concerns) >= max_count:
                return concerns
    return concerns


def _face_line(face: Dict[str, Any]) -> str:
    parts = [f"LATEST FACE ({format_date(face['created_at'])}):"]

    metrics = face.get("visual_metrics")
    if isinstance(metrics, list):
        metrics = metrics[0] if metrics else None
    if isinstance(metrics, dict):
        if metrics.get("redness_percentage") is not None:
            parts.append(f"Redness {metrics['redness_percentage']}%")
        if metrics.get("yellowness_percentage") is not None:
            parts.append(f"Yellowness {metrics['yellowness_percentage']}%")

    problems = face.get("problems_detected") or []
    conditions = [truncate(str(p.get("type")), 80) for p in problems if isinstance(p, dict) and p.get("type")]
    if conditions:
        parts.append(", ".join(conditions))

    return " | ".join(parts)


def _risk_line(risk: Dict[str, Any]) -> str:
    parts = [f"LATEST RISK ({format_date(risk['created_at'])}):"]
    text = risk.get("risk_assessment")
    if text:
        level = extract_risk_level(text)
        if level:
            parts.append(level)
        concerns = extract_key_concerns(text)
        if concerns:
            parts.append(", ".join(concerns))
    return " | ".join(parts)


def profile_line(profile: Dict[str, Any]) -> str:
    name = profile.get("name") or "User"
    since = profile.get("created_at")
    if since:
        return f"USER: {name} (member since {format_date(since)})"
    return f"USER: {name}"


def build_health_summary(analyses: List[Dict[str, Any]], profile: Optional[Dict[str, Any]] = None) -> str:
    """
    Compact plain-text summary of a user's whole history, for prompt injection.

    Args:
        analyses: Stored analyses, newest first
        profile: Optional {"name", "created_at"} for the profile line

    Returns:
        str: multi-line summary
    """
    lines = []

    if profile:
        lines.append(profile_line(profile))

    if not analyses:
        lines += [
            "",
            "HEALTH DATA: No health data available yet.",
            "SUGGESTION: Encourage the user to:",
            "- Upload a blood test or lab report in 'Scan Report'",
            "- Take a facial health analysis in 'Scan Face'",
            "- Generate a comprehensive Risk Assessment",
        ]
        return "\n".join(lines)

    reports = [a for a in analyses if a.get("type") == "report"]
    faces = [a for a in analyses if a.get("type") == "face"]
    risks = [a for a in analyses if a.get("type") == "risk"]

    newest = analyses[0]["created_at"]
    oldest = analyses[-1]["created_at"]

    lines += [
        "",
        f"HEALTH SUMMARY ({len(analyses)} analyses: {len(reports)} reports, {len(faces)} face, "
        f"{len(risks)} risk | {format_date(oldest)} - {format_date(newest)})",
    ]

    entries = collect_metrics(reports)
    latest = latest_by_name(entries)

    if latest:
        lines += ["", "LATEST METRICS:"]
        for metric in list(latest.values())[:MAX_LATEST_METRICS]:
            tag = "normal" if metric.status == "normal" else metric.status.upper()
            lines.append(f"- {metric.name}: {metric.value} {metric.unit} [{tag}] ({format_date(metric.date)})")

    abnormal = [m for m in latest.values() if m.status != "normal"]
    if abnormal:
        lines += ["", "ABNORMAL FINDINGS:"]
        for metric in abnormal:
            lines.append(f"- {metric.name}: {metric.value} {metric.unit} [{metric.status.upper()}]")

    trends = compute_trends(entries)
    if trends:
        lines += ["", "TRENDS:"]
        for trend in trends[:MAX_TRENDS]:
            lines.append(f"- {trend.name}: {trend.earliest} -> {trend.latest} {trend.unit} [{trend.direction}]")

    if faces:
        lines += ["", _face_line(faces[0])]

    if risks:
        lines += ["", _risk_line(risks[0])]

    return "\n".join(lines)
