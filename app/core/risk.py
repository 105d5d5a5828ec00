import re
import logging
from typing import Any, Dict, List, NamedTuple, Optional

# Logger setup
logger = logging.getLogger(__name__)

INFLAMMATION_MARKERS = ("crp", "esr", "ige", "eosin")
SKIN_RELEVANT_MARKERS = ("hba1c", "glucose", "vitamin d", "ferritin", "zinc", "thyroid", "tsh")

# Upper bound for a normal total bilirubin (mg/dL)
BILIRUBIN_LIMIT = 1.2

ACTIVE_SYMPTOMS = re.compile(r"itch|rash|burn|stinging|redness|peel", re.IGNORECASE)
ACNE_SYMPTOMS = re.compile(r"acne|oily|breakout", re.IGNORECASE)
DRY_SYMPTOMS = re.compile(r"dry|flaky|itch|peel", re.IGNORECASE)
IRRITATION_SYMPTOMS = re.compile(r"redness|burn|stinging|rash", re.IGNORECASE)
LEADING_NUMBER = re.compile(r"\s*([-+]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+))")


class Concern(NamedTuple):
    level: str  # high, moderate or low
    description: str


def _symptoms(user_data: Dict[str, Any]) -> List[str]:
    symptoms = user_data.get("symptoms")
    if isinstance(symptoms, list):
        return [str(s) for s in symptoms]
    if symptoms:
        return [str(symptoms)]
    return []


def _parse_float(value: str) -> Optional[float]:
    """Leading number of a lab value, so "1.8 (H)" reads as 1.8."""
    match = LEADING_NUMBER.match(value.replace(",", ""))
    return float(match.group(1)) if match else None


def _bullets(concerns: List[Concern], empty_message: str) -> List[str]:
    if not concerns:
        return [empty_message, ""]
    return [f"- {c.description}" for c in concerns] + [""]


def build_risk_assessment(
    lab_data: Optional[Dict[str, Any]],
    visual_metrics: Optional[Dict[str, Any]],
    user_data: Optional[Dict[str, Any]]
) -> str:
    """
    Rule-based dermatology health check in Markdown.

    Args:
        lab_data: Structured report data (a dict with a "metrics" list) or None
        visual_metrics: Face metrics with redness/yellowness percentages or None
        user_data: Age, gender and reported symptoms

    Returns:
        str: Markdown report ending with an overall risk level

    Raises:
        ValueError: when neither lab data nor visual metrics are given, or
        user data is missing
    """
    if not lab_data and not visual_metrics:
        raise ValueError("At least one data source (lab data or visual metrics) is required")
    if user_data is None:
        raise ValueError("User data is required")

    concerns: List[Concern] = []
    strengths: List[str] = []
    symptoms = _symptoms(user_data)

    sources = " and ".join(
        s for s in (
            "skin photo analysis" if visual_metrics else "",
            "report data" if lab_data else "",
        ) if s
    )

    lines = [
        "# Dermatology Health Check Report",
        "",
        "## Executive Summary",
        "",
        f"This dermatologist-focused assessment is based on {sources} for a "
        f"{user_data.get('age') or 'unknown age'}-year-old {user_data.get('gender') or 'individual'}. "
        "The findings below focus only on skin-related risk, with clear follow-up guidance.",
        "",
        "## Key Dermatology Findings",
        "",
    ]

    if visual_metrics:
        lines += ["### Skin Photo Analysis", ""]

        redness = visual_metrics.get("redness_percentage")
        if redness is not None:
            if redness >= 65:
                lines.append(f"- **Facial Redness**: {redness}% - Elevated")
                concerns.append(Concern("moderate", "Pronounced facial redness may indicate active irritation or inflammatory skin activity."))
            elif redness >= 35:
                lines.append(f"- **Facial Redness**: {redness}% - Mild elevation")
                concerns.append(Concern("low", "Mild redness is present and may reflect sensitivity or temporary irritation."))
            else:
                lines.append(f"- **Facial Redness**: {redness}% - Within expected range")
                strengths.append("Redness level is within a low-risk range")

        yellowness = visual_metrics.get("yellowness_percentage")
        if yellowness is not None:
            if yellowness >= 70:
                lines.append(f"- **Facial Yellowness**: {yellowness}% - Concerning")
                concerns.append(Concern("high", "Marked yellowness should be reviewed urgently by a clinician to rule out jaundice-related causes."))
            elif yellowness >= 40:
                lines.append(f"- **Facial Yellowness**: {yellowness}% - Mild elevation")
                concerns.append(Concern("low", "Mild yellow undertone is present; confirm under consistent lighting and monitor trend."))
            else:
                lines.append(f"- **Facial Yellowness**: {yellowness}% - Within expected range")
                strengths.append("Skin tone balance appears stable")

        lines.append("")

    if lab_data:
        lines += ["### Dermatology-Relevant Report Findings", ""]
        metrics = lab_data.get("metrics") if isinstance(lab_data, dict) else None
        matched = False

        for metric in metrics if isinstance(metrics, list) else []:
            name = str(metric.get("name") or "").strip()
            if not name:
                continue

            lower_name = name.lower()
            value_text = str(metric.get("value") or "").strip()
            unit = f" {metric['unit']}" if metric.get("unit") else ""
            numeric = _parse_float(value_text)

            if any(marker in lower_name for marker in INFLAMMATION_MARKERS):
                matched = True
                lines.append(f"- **{name}**: {value_text}{unit} (inflammation/allergy marker potentially relevant to skin)")
                if numeric is not None and numeric > 0:
                    concerns.append(Concern("low", f"{name} may support inflammatory or allergic skin activity when correlated with symptoms."))
            elif "bilirubin" in lower_name:
                matched = True
                lines.append(f"- **{name}**: {value_text}{unit} (color-change marker relevant to yellowing concerns)")
                if numeric is not None and numeric > BILIRUBIN_LIMIT:
                    concerns.append(Concern("high", "Elevated bilirubin with visible yellowness warrants prompt clinical evaluation."))
            elif any(marker in lower_name for marker in SKIN_RELEVANT_MARKERS):
                matched = True
                lines.append(f"- **{name}**: {value_text}{unit} (may influence skin healing, barrier, or flare tendency)")

        if not matched:
            lines.append("- No clearly dermatology-relevant report markers were identified from the provided report data.")
        lines.append("")

    if symptoms:
        lines += [f"- **Reported skin symptoms**: {', '.join(symptoms)}", ""]
        if any(ACTIVE_SYMPTOMS.search(s) for s in symptoms):
            concerns.append(Concern("moderate", "Reported active skin symptoms suggest ongoing irritation that should be clinically reviewed if persistent."))

    high = [c for c in concerns if c.level == "high"]
    moderate = [c for c in concerns if c.level == "moderate"]
    low = [c for c in concerns if c.level == "low"]

    lines += ["## Dermatology Risk Stratification", "", "### Immediate Concerns (High Priority)", ""]
    lines += _bullets(high, "No immediate dermatology concerns identified.")
    lines += ["### Moderate Concerns (Monitor)", ""]
    lines += _bullets(moderate, "No moderate dermatology concerns identified.")
    lines += ["### Low-Level Observations", ""]
    lines += _bullets(low, "No minor dermatology observations to note.")

    lines += [
        "## Personalized Dermatology Plan",
        "",
        "### Daily Skin Care Actions",
        "",
        "- Use a gentle, fragrance-free cleanser and moisturizer twice daily",
        "- Apply broad-spectrum SPF 30+ every morning and reapply when outdoors",
        "- Avoid harsh exfoliants or frequent product switching during active irritation",
    ]
    if symptoms:
        lines.append(f"- Track symptom triggers and flare patterns: {', '.join(symptoms)}")
    lines += ["", "### Targeted Treatment Considerations", ""]

    if any(ACNE_SYMPTOMS.search(s) for s in symptoms):
        lines.append("- Consider acne-focused actives (e.g., salicylic acid, adapalene) with gradual introduction")
    if any(DRY_SYMPTOMS.search(s) for s in symptoms):
        lines.append("- Prioritize barrier repair with ceramides, petrolatum, and reduced irritant exposure")
    if any(IRRITATION_SYMPTOMS.search(s) for s in symptoms):
        lines.append("- Use anti-inflammatory, low-irritation products and pause known triggers until symptoms settle")
    if not symptoms:
        lines.append("- No specific symptom-targeted treatment needed; continue maintenance skin care")
    lines += ["", "### Follow-up Actions", ""]

    if high:
        lines.append("- **Urgent**: Arrange prompt clinical review (same week) for high-priority skin findings")
    elif moderate:
        lines.append("- Book a routine dermatologist follow-up within 2-6 weeks")
    else:
        lines.append("- Continue monitoring skin changes and review with dermatology if new symptoms appear")

    lines += [
        "- Bring photos and symptom timeline to improve clinical evaluation accuracy",
        "",
        "### Preventive Skin Measures",
        "",
        "- Maintain consistent sun protection and avoid prolonged UV exposure",
        "- Patch-test new skincare products before full-face use",
        "- Maintain sleep, hydration, and stress control to reduce flare frequency",
        "",
        "## Skin Risk Overview",
        "",
        f"- **Overall Risk Level**: {risk_level(concerns)}",
    ]

    if strengths:
        lines.append(f"- **Areas of Strength**: {', '.join(strengths[:3])}")
    else:
        lines.append("- **Areas of Strength**: No major adverse skin indicators were detected from available data")

    improvements = [c.description for c in concerns[:3]]
    if improvements:
        lines.append(f"- **Areas for Improvement**: {', '.join(improvements)}")
    else:
        lines.append("- **Areas for Improvement**: Continue current skin-maintenance practices")

    lines += [
        "",
        "---",
        "",
        "**Important Notes:**",
        "- This assessment is AI-generated and for informational purposes only",
        "- Always consult a qualified dermatologist for diagnosis and treatment",
        "- Skin findings can vary with lighting, image quality, and timing",
        "",
        "*Note: This assessment was generated by the rule-based analyzer. "
        "Configure a Gemini API key for model-generated analysis.*",
    ]

    logger.debug(f"Risk assessment built with {len(concerns)} concern(s)")
    return "\n".join(lines)


def risk_level(concerns: List[Concern]) -> str:
    levels = {c.level for c in concerns}
    if "high" in levels:
        return "High"
    if "moderate" in levels:
        return "Moderate"
    return "Low"
