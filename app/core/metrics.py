import re
import logging
from typing import Dict, List, Optional, Tuple

from app.models.enums import MetricStatus, Priority, Severity
from app.models.responses import DetectedProblem, HealthMetric, StructuredReport, Treatment

# Logger setup
logger = logging.getLogger(__name__)

# (pattern, metric name, unit); the first pattern matching a name wins
METRIC_PATTERNS = [
    (r"hemoglobin[:\s]+([0-9.]+)\s*(g/dl|gm/dl)", "Hemoglobin", "g/dL"),
    (r"\bhb[:\s]+([0-9.]+)\s*(g/dl|gm/dl)", "Hemoglobin", "g/dL"),
    (r"white blood cells?[:\s]+([0-9,]+)\s*(cells?/[μu]l|/[μu]l)", "White Blood Cells", "cells/μL"),
    (r"\bwbc[:\s]+([0-9,]+)\s*(cells?/[μu]l|/[μu]l)", "White Blood Cells", "cells/μL"),
    (r"cholesterol[:\s]+([0-9.]+)\s*(mg/dl)", "Total Cholesterol", "mg/dL"),
    (r"blood sugar[:\s]+([0-9.]+)\s*(mg/dl)", "Blood Sugar", "mg/dL"),
    (r"glucose[:\s]+([0-9.]+)\s*(mg/dl)", "Glucose", "mg/dL"),
    (r"blood pressure[:\s]+([0-9]+/[0-9]+)\s*(mmhg|mm hg)?", "Blood Pressure", "mmHg"),
    (r"\bbp[:\s]+([0-9]+/[0-9]+)\s*(mmhg|mm hg)?", "Blood Pressure", "mmHg"),
    (r"heart rate[:\s]+([0-9]+)\s*(bpm|beats/min)?", "Heart Rate", "bpm"),
    (r"pulse[:\s]+([0-9]+)\s*(bpm|beats/min)?", "Heart Rate", "bpm"),
    (r"temperature[:\s]+([0-9.]+)\s*(°f|°c|f|c)", "Temperature", "°F"),
    (r"weight[:\s]+([0-9.]+)\s*(kg|lbs|pounds)", "Weight", "kg"),
    (r"height[:\s]+([0-9.]+)\s*(cm|ft|feet|inches)", "Height", "cm"),
]

# Reference ranges (low, high) for adults
REFERENCE_RANGES: Dict[str, Tuple[float, float]] = {
    "Hemoglobin": (12.0, 17.5),
    "White Blood Cells": (4000, 11000),
    "Total Cholesterol": (0, 200),
    "Blood Sugar": (70, 126),
    "Glucose": (70, 126),
    "Heart Rate": (60, 100),
    "Temperature": (97.0, 99.5),
}

# Values this far outside the range are critical
CRITICAL_FACTOR = 1.5

NO_METRICS_VALUE = "No standard health metrics detected in the provided text"


def parse_numeric(value: str) -> Optional[float]:
    """First number in a metric value, or None."""
    match = re.search(r"[0-9]+(?:\.[0-9]+)?", value.replace(",", ""))
    if not match:
        return None
    return float(match.group(0))


def metric_status(name: str, value: str) -> Optional[MetricStatus]:
    if name == "Blood Pressure":
        parts = value.split("/")
        if len(parts) != 2:
            return None
        systolic, diastolic = float(parts[0]), float(parts[1])
        if systolic >= 180 or diastolic >= 120:
            return MetricStatus.CRITICAL
        if systolic >= 130 or diastolic >= 80:
            return MetricStatus.HIGH
        if systolic < 90 or diastolic < 60:
            return MetricStatus.LOW
        return MetricStatus.NORMAL

    bounds = REFERENCE_RANGES.get(name)
    numeric = parse_numeric(value)
    if bounds is None or numeric is None:
        return None

    low, high = bounds
    if numeric > high * CRITICAL_FACTOR or (low > 0 and numeric < low / CRITICAL_FACTOR):
        return MetricStatus.CRITICAL
    if numeric > high:
        return MetricStatus.HIGH
    if numeric < low:
        return MetricStatus.LOW
    return MetricStatus.NORMAL


def reference_range(name: str) -> Optional[str]:
    if name == "Blood Pressure":
        return "90/60-120/80"
    bounds = REFERENCE_RANGES.get(name)
    if bounds is None:
        return None
    low, high = bounds
    return f"<{high:g}" if low == 0 else f"{low:g}-{high:g}"


def extract_metrics(raw_text: str) -> List[HealthMetric]:
    """
    Pull common health metrics out of free OCR text.

    Returns:
        list: metrics found, or a single "Analysis Status" placeholder
    """
    metrics = []
    seen = set()

    for pattern, name, unit in METRIC_PATTERNS:
        if name in seen:
            continue
        match = re.search(pattern, raw_text, re.IGNORECASE)
        if not match:
            continue

        value = match.group(1).replace(",", "")
        metrics.append(HealthMetric(
            name=name,
            value=value,
            unit=unit,
            status=metric_status(name, value),
            reference_range=reference_range(name)
        ))
        seen.add(name)

    if not metrics:
        metrics.append(HealthMetric(name="Analysis Status", value=NO_METRICS_VALUE))

    return metrics


def assess_metrics(metrics: List[HealthMetric]) -> Tuple[List[DetectedProblem], List[Treatment]]:
    problems = []
    treatments = []

    for metric in metrics:
        value = parse_numeric(metric.value)
        if value is None:
            continue

        if metric.name == "Hemoglobin" and value < 12:
            problems.append(DetectedProblem(
                type="Low Hemoglobin",
                severity=Severity.SEVERE if value < 10 else Severity.MODERATE,
                description=f"Hemoglobin level of {metric.value} is below normal range. This may indicate anemia or blood loss.",
                confidence=0.85
            ))
            treatments.append(Treatment(
                category="Medical Consultation",
                recommendation="Consult with a healthcare provider for further evaluation and possible iron supplementation.",
                priority=Priority.HIGH,
                timeframe="Within 1 week"
            ))

        if metric.name == "Total Cholesterol" and value > 200:
            problems.append(DetectedProblem(
                type="Elevated Cholesterol",
                severity=Severity.SEVERE if value > 240 else Severity.MODERATE,
                description=f"Total cholesterol of {metric.value} is above recommended levels, increasing cardiovascular risk.",
                confidence=0.8
            ))
            treatments.append(Treatment(
                category="Lifestyle Changes",
                recommendation="Adopt a heart-healthy diet low in saturated fats, increase physical activity, and consider medication if levels remain high.",
                priority=Priority.MEDIUM,
                timeframe="Ongoing"
            ))

        if metric.name in ("Glucose", "Blood Sugar") and value > 126:
            problems.append(DetectedProblem(
                type="Elevated Blood Sugar",
                severity=Severity.SEVERE if value > 200 else Severity.MODERATE,
                description=f"Fasting glucose of {metric.value} may indicate diabetes or prediabetes.",
                confidence=0.85
            ))
            treatments.append(Treatment(
                category="Medical Follow-up",
                recommendation="Schedule an HbA1c test and consult with an endocrinologist for diabetes management.",
                priority=Priority.HIGH,
                timeframe="Within 1-2 weeks"
            ))

    return problems, treatments


def structure_report_text(raw_text: str) -> StructuredReport:
    """
    Rule-based structuring of OCR text into metrics, problems and treatments.

    Raises:
        ValueError: when the text is empty
    """
    if not raw_text or not raw_text.strip():
        raise ValueError("Raw text cannot be empty")

    metrics = extract_metrics(raw_text)
    problems, treatments = assess_metrics(metrics)

    summary = "Report analysis completed. "
    if not problems:
        summary += "All detected values appear within normal ranges. Continue regular health monitoring."
    else:
        summary += (
            f"{len(problems)} potential health concern(s) identified. "
            "Please review recommendations and consult healthcare provider."
        )

    logger.debug(f"Structured {len(metrics)} metric(s), {len(problems)} problem(s)")
    return StructuredReport(metrics=metrics, problems_detected=problems, treatments=treatments, summary=summary)
