from datetime import datetime

from conftest import make_analysis

from app.core.health_summary import (
    build_health_summary,
    compute_trends,
    extract_key_concerns,
    extract_risk_level,
    format_date,
    latest_by_name,
    MetricEntry,
    truncate,
)


def _report(days_ago, *metrics):
    return make_analysis("report", days_ago=days_ago, structured_data={"metrics": [
        {"name": name, "value": value, "unit": unit, "status": status}
        for name, value, unit, status in metrics
    ]})


def test_format_date():
    assert format_date(datetime(2025, 3, 5)) == "Mar 5, 2025"


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("a" * 70, 60) == "a" * 57 + "..."


def test_no_data_block():
    summary = build_health_summary([], profile={"name": "Sara", "created_at": datetime(2024, 1, 2)})

    assert summary.startswith("USER: Sara (member since Jan 2, 2024)")
    assert "HEALTH DATA: No health data available yet." in summary
    assert "- Take a facial health analysis in 'Scan Face'" in summary


def test_counts_and_date_span():
    analyses = [
        make_analysis("risk", days_ago=0, risk_assessment="- **Overall Risk Level**: Low"),
        make_analysis("face", days_ago=1, visual_metrics={"redness_percentage": 40, "yellowness_percentage": 12}),
        _report(10, ("Glucose", "95", "mg/dL", "normal")),
    ]
    summary = build_health_summary(analyses)

    assert "HEALTH SUMMARY (3 analyses: 1 reports, 1 face, 1 risk | Mar 10, 2025 - Mar 20, 2025)" in summary
    assert "- Glucose: 95 mg/dL [normal] (Mar 10, 2025)" in summary
    assert "LATEST FACE (Mar 19, 2025): | Redness 40% | Yellowness 12%" in summary
    assert "LATEST RISK (Mar 20, 2025): | Low" in summary
    assert "ABNORMAL FINDINGS" not in summary


def test_latest_metric_per_name_is_case_insensitive():
    analyses = [
        _report(0, ("HEMOGLOBIN", "13.4", "g/dL", "normal")),
        _report(30, ("Hemoglobin", "10.9", "g/dL", "low")),
    ]
    summary = build_health_summary(analyses)

    assert "- HEMOGLOBIN: 13.4 g/dL [normal]" in summary
    assert "10.9 g/dL [LOW]" not in summary.split("TRENDS:")[0]
    assert "- HEMOGLOBIN: 10.9 -> 13.4 g/dL [improving]" in summary


def test_abnormal_findings():
    summary = build_health_summary([_report(0, ("Total Cholesterol", "250", "mg/dL", "high"))])
    assert "ABNORMAL FINDINGS:\n- Total Cholesterol: 250 mg/dL [HIGH]" in summary


def test_trend_directions():
    def entry(value, status, day):
        return MetricEntry("Glucose", value, "mg/dL", status, datetime(2025, 1, day))

    worsening = compute_trends([entry("95", "normal", 1), entry("140", "high", 10)])
    assert worsening[0].direction == "worsening"

    stable = compute_trends([entry("95", "normal", 1), entry("95", "normal", 10)])
    assert stable[0].direction == "stable"

    both_high_falling = compute_trends([entry("180", "high", 1), entry("140", "high", 10)])
    assert both_high_falling[0].direction == "improving"


def test_trend_needs_two_numeric_points():
    entries = [
        MetricEntry("Blood Pressure", "pending", "mmHg", "normal", datetime(2025, 1, 1)),
        MetricEntry("Blood Pressure", "120/80", "mmHg", "normal", datetime(2025, 1, 2)),
        MetricEntry("Heart Rate", "72", "bpm", "normal", datetime(2025, 1, 2)),
    ]
    assert compute_trends(entries) == []


def test_latest_by_name_keeps_newest():
    older = MetricEntry("WBC", "9000", "", "normal", datetime(2025, 1, 1))
    newer = MetricEntry("wbc", "7000", "", "normal", datetime(2025, 2, 1))
    assert latest_by_name([older, newer])["wbc"] is newer


def test_risk_text_parsing():
    text = "\n".join([
        "### Immediate Concerns (High Priority)",
        "",
        "- Marked yellowness should be reviewed urgently by a clinician to rule out jaundice-related causes.",
        "",
        "### Moderate Concerns (Monitor)",
        "",
        "- Reported active skin symptoms",
        "",
        "## Skin Risk Overview",
        "",
        "- **Overall Risk Level**: Elevated",
    ])

    assert extract_risk_level(text) == "Elevated"
    concerns = extract_key_concerns(text)
    assert len(concerns) == 2
    assert concerns[0].endswith("...")
    assert len(concerns[0]) == 60
    assert concerns[1] == "Reported active skin symptoms"


def test_risk_level_missing():
    assert extract_risk_level("No level here") is None
