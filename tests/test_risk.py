import pytest

from app.core.health_summary import extract_key_concerns, extract_risk_level
from app.core.risk import Concern, build_risk_assessment, risk_level

USER = {"age": 34, "gender": "female", "symptoms": ["itching", "dry patches"]}


def test_requires_a_data_source():
    with pytest.raises(ValueError):
        build_risk_assessment(None, None, USER)


def test_requires_user_data():
    with pytest.raises(ValueError):
        build_risk_assessment(None, {"redness_percentage": 20}, None)


def test_low_risk_from_calm_skin():
    report = build_risk_assessment(None, {"redness_percentage": 20, "yellowness_percentage": 10}, {"age": 30})

    assert report.startswith("# Dermatology Health Check Report")
    assert "**Facial Redness**: 20% - Within expected range" in report
    assert "**Overall Risk Level**: Low" in report
    assert "No immediate dermatology concerns identified." in report


def test_high_risk_from_yellowness():
    report = build_risk_assessment(None, {"redness_percentage": 70, "yellowness_percentage": 75}, USER)

    assert "**Facial Yellowness**: 75% - Concerning" in report
    assert "**Overall Risk Level**: High" in report
    assert "**Urgent**" in report


def test_lab_markers():
    lab = {"metrics": [
        {"name": "CRP", "value": "8.2", "unit": "mg/L"},
        {"name": "Total Bilirubin", "value": "2.1", "unit": "mg/dL"},
        {"name": "Vitamin D", "value": "18", "unit": "ng/mL"},
        {"name": "Hemoglobin", "value": "13.5", "unit": "g/dL"},
    ]}
    report = build_risk_assessment(lab, None, {"age": 50, "gender": "male"})

    assert "based on report data" in report
    assert "**CRP**: 8.2 mg/L (inflammation/allergy marker" in report
    assert "**Total Bilirubin**: 2.1 mg/dL (color-change marker" in report
    assert "**Vitamin D**: 18 ng/mL" in report
    assert "**Hemoglobin**" not in report
    assert "**Overall Risk Level**: High" in report


def test_report_without_relevant_markers():
    report = build_risk_assessment({"metrics": [{"name": "Hemoglobin", "value": "14"}]}, None, {})
    assert "No clearly dermatology-relevant report markers" in report


def test_symptoms_shape_the_plan():
    report = build_risk_assessment(None, {"redness_percentage": 10}, USER)

    assert "**Reported skin symptoms**: itching, dry patches" in report
    assert "barrier repair" in report
    assert "**Overall Risk Level**: Moderate" in report


def test_risk_level():
    assert risk_level([]) == "Low"
    assert risk_level([Concern("low", "a"), Concern("moderate", "b")]) == "Moderate"
    assert risk_level([Concern("high", "a"), Concern("low", "b")]) == "High"


def test_generated_report_can_be_summarized():
    report = build_risk_assessment(None, {"redness_percentage": 70, "yellowness_percentage": 75}, USER)

    assert extract_risk_level(report) == "High"
    concerns = extract_key_concerns(report)
    assert 1 <= len(concerns) <= 3
    assert all(len(c) <= 60 for c in concerns)
    assert concerns[0].startswith("Marked yellowness")


def test_lab_values_with_flags_and_units():
    lab = {"metrics": [{"name": "Total Bilirubin", "value": "1.8 (H)", "unit": "mg/dL"}]}
    report = build_risk_assessment(lab, None, {"age": 41})
    assert "**Overall Risk Level**: High" in report

    lab = {"metrics": [{"name": "CRP", "value": "2.1 mg/L"}]}
    report = build_risk_assessment(lab, None, {"age": 41})
    assert "CRP may support inflammatory or allergic skin activity" in report
    assert "**Overall Risk Level**: Low" in report
