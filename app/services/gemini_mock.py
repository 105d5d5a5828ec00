import re
import logging
from typing import Any, Dict, List, Optional

from app.core.metrics import structure_report_text
from app.core.risk import build_risk_assessment
from app.models.responses import StructuredReport

# Logger setup
logger = logging.getLogger(__name__)

QUESTION_PATTERN = re.compile(r"=== CURRENT QUESTION ===\s*\n([^\n]+)", re.IGNORECASE)
COUNTS_PATTERN = re.compile(
    r"HEALTH SUMMARY \((\d+) analyses: (\d+) reports, (\d+) face, (\d+) risk", re.IGNORECASE
)
NAME_PATTERN = re.compile(r"^USER: ([^(\n]+)", re.MULTILINE)


def _section(prompt: str, header: str) -> List[str]:
    """Bullet lines under a summary header such as "LATEST METRICS:"."""
    match = re.search(rf"^{re.escape(header)}\n((?:- .*\n?)+)", prompt, re.MULTILINE)
    if not match:
        return []
    return [line for line in match.group(1).splitlines() if line.startswith("- ")]


def _line(prompt: str, prefix: str) -> Optional[str]:
    match = re.search(rf"^{re.escape(prefix)}.*$", prompt, re.MULTILINE)
    return match.group(0) if match else None


def _contains(text: str, *words: str) -> bool:
    return any(word in text for word in words)


class MockGeminiAnalyzer:
    """
    Rule-based analyzer with the same interface as GeminiAnalyzer.

    Used when no API key is configured, when USE_MOCK_AI is set, or when the
    hosted model's quota is exhausted.
    """

    model_name = "rule-based"

    async def structure_ocr_data(self, raw_text: str) -> StructuredReport:
        return structure_report_text(raw_text)

    async def generate_risk_assessment(
        self,
        lab_data: Optional[Dict[str, Any]],
        visual_metrics: Optional[Dict[str, Any]],
        user_data: Dict[str, Any]
    ) -> str:
        return build_risk_assessment(lab_data, visual_metrics, user_data)

    async def generate_health_insights(self, prompt: str) -> str:
        if not prompt or not prompt.strip():
            raise ValueError("Prompt cannot be empty")

        question_match = QUESTION_PATTERN.search(prompt)
        question = (question_match.group(1) if question_match else prompt).lower().strip()

        counts = COUNTS_PATTERN.search(prompt)
        reports, faces, risks = (int(counts.group(i)) for i in (2, 3, 4)) if counts else (0, 0, 0)
        has_any = reports + faces + risks > 0

        name_match = NAME_PATTERN.search(prompt)
        name = name_match.group(1).strip() if name_match else None
        greeting = f"{name}, " if name and name != "User" else ""

        if _contains(question, "what is sehat", "what's sehat", "sehatscan", "sehat scan", "about this app", "about this platform"):
            return self._about(greeting)

        if _contains(question, "latest report", "health report", "my report", "explain my", "my results", "lab results", "blood test"):
            return self._reports(prompt, greeting) if reports else self._no_reports(greeting)

        if _contains(question, "face", "facial", "skin", "appearance"):
            return self._faces(prompt, greeting) if faces else self._no_faces(greeting)

        if _contains(question, "risk", "assessment", "health check"):
            return self._risk(prompt, greeting) if risks else self._no_risk(greeting)

        if _contains(question, "trend", "history", "progress", "over time", "compare"):
            return self._trends(prompt, greeting) if has_any else self._no_trends(greeting)

        if _contains(question, "help", "what can you"):
            return self._help(greeting)

        return self._fallback(greeting, reports, faces, risks)

    def _about(self, greeting: str) -> str:
        return (
            f"{greeting}**SehatScan AI** is your intelligent health companion!\n\n"
            "**Key Features:**\n"
            "- **Report Analysis** - Upload lab reports and get your health metrics extracted and explained\n"
            "- **Facial Health Analysis** - Visual health assessment from photos\n"
            "- **Health Check** - Dermatology-focused evaluation combining your data\n"
            "- **AI Health Assistant** - Personalized insights based on your data\n\n"
            "**Important:** SehatScan provides educational insights, not medical diagnoses. "
            "Always consult healthcare professionals for medical decisions."
        )

    def _reports(self, prompt: str, greeting: str) -> str:
        parts = [f"{greeting}Based on your uploaded health reports, here's what I found:", ""]

        metrics = _section(prompt, "LATEST METRICS:")
        if metrics:
            parts += ["**Your Health Metrics:**", ""] + metrics + [""]

        abnormal = _section(prompt, "ABNORMAL FINDINGS:")
        if abnormal:
            parts += ["**Values Outside the Normal Range:**", ""] + abnormal + [""]

        parts += [
            "**General Recommendations:**",
            "- Continue monitoring your health regularly",
            "- Discuss any abnormal values with your healthcare provider",
            "- Consider follow-up tests for any concerning metrics",
            "- Maintain a healthy lifestyle with balanced nutrition and exercise",
            "",
            "Would you like me to explain any specific metric in more detail?",
        ]
        return "\n".join(parts)

    def _no_reports(self, greeting: str) -> str:
        return (
            f"{greeting}I don't see any health reports in your account yet.\n\n"
            "**To get personalized report analysis:**\n"
            "1. Go to **Scan Report** in the dashboard\n"
            "2. Upload a clear photo of your lab report\n"
            "3. Come back here and I'll explain everything in detail!"
        )

    def _faces(self, prompt: str, greeting: str) -> str:
        parts = [f"{greeting}Based on your facial health analysis:", ""]
        face_line = _line(prompt, "LATEST FACE")
        if face_line:
            parts += [f"**Your Visual Health Indicators:** {face_line}", ""]
        parts += [
            "**General Guidance:**",
            "- Skin color changes may reflect underlying health conditions",
            "- Lighting affects the measurement, so compare photos taken in similar conditions",
            "- Regular analysis helps track changes over time",
        ]
        return "\n".join(parts)

    def _no_faces(self, greeting: str) -> str:
        return (
            f"{greeting}You haven't done a facial health analysis yet.\n\n"
            "**To get facial health insights:**\n"
            "1. Go to **Scan Face** in the dashboard\n"
            "2. Take a clear, well-lit photo of your face\n"
            "3. Get insights about redness, yellowness and skin health"
        )

    def _risk(self, prompt: str, greeting: str) -> str:
        parts = [f"{greeting}Here's a summary of your latest health check:", ""]
        risk_line = _line(prompt, "LATEST RISK")
        if risk_line:
            parts += [risk_line, ""]
        parts += [
            "**Next Steps:**",
            "- Review high-risk areas with your healthcare provider",
            "- Focus on lifestyle changes for modifiable risk factors",
            "- Continue regular health monitoring",
        ]
        return "\n".join(parts)

    def _no_risk(self, greeting: str) -> str:
        return (
            f"{greeting}You haven't generated a health check yet.\n\n"
            "**To run a health check:**\n"
            "1. Upload a health report or complete a facial scan\n"
            "2. Go to **Health Check** in the dashboard\n"
            "3. Get a combined analysis of your health data"
        )

    def _trends(self, prompt: str, greeting: str) -> str:
        parts = [f"{greeting}Let me analyze your health trends:", ""]
        trends = _section(prompt, "TRENDS:")
        if trends:
            parts += ["**Your Health Timeline:**", ""] + trends + [""]
        else:
            parts += ["Upload the same kind of test again later and I can compare the values.", ""]
        parts += [
            "**To better track trends:**",
            "- Upload reports regularly (monthly or quarterly)",
            "- Compare same types of tests over time",
            "- Note any lifestyle changes between tests",
        ]
        return "\n".join(parts)

    def _no_trends(self, greeting: str) -> str:
        return (
            f"{greeting}I need more data to show you trends.\n\n"
            "Upload multiple health reports over time, and I'll be able to show how your metrics change. "
            "Start by uploading your first report in **Scan Report**!"
        )

    def _help(self, greeting: str) -> str:
        return (
            f"{greeting}I'm your AI Health Assistant! Here's how I can help you:\n\n"
            "- Explain your lab report results in simple terms\n"
            "- Identify patterns and trends in your health data\n"
            "- Explain medical terms and concepts\n"
            "- Suggest what health data to upload next\n\n"
            "I provide insights, not medical diagnoses. Always consult healthcare professionals for medical concerns."
        )

    def _fallback(self, greeting: str, reports: int, faces: int, risks: int) -> str:
        if not reports + faces + risks:
            return (
                f"{greeting}Welcome to SehatScan AI! I'm your intelligent health assistant.\n\n"
                "I notice you haven't uploaded any health data yet.\n\n"
                "**Get Started:**\n"
                "1. **Scan Report** - Upload a blood test or lab report\n"
                "2. **Scan Face** - Take a photo for visual health analysis\n"
                "3. **Health Check** - Get a dermatologist-focused evaluation"
            )

        return "\n".join([
            f"{greeting}I'm here to help with your health questions!",
            "",
            "**Your Health Data Summary:**",
            "- You have medical reports uploaded" if reports else "- No medical reports yet",
            "- You have facial health analyses" if faces else "- No facial scans yet",
            "- You have health checks" if risks else "- No health checks yet",
            "",
            "What would you like to know about your health data?",
        ])
