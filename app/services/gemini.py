import json
import logging
from typing import Any, Dict, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from app.config import settings
from app.exceptions import AIServiceError
from app.models.responses import StructuredReport

# Logger setup
logger = logging.getLogger(__name__)

STRUCTURE_PROMPT = """Extract key health metrics from this medical report OCR text and return as valid JSON.
Include metric names, values, units, a status (normal, low, high or critical) and the reference range where available.
Also list detected problems and treatment recommendations, and a one-sentence summary.

OCR Text:
{raw_text}

Return format: {{"metrics": [{{"name": "...", "value": "...", "unit": "...", "status": "...", "reference_range": "..."}}],
"problems_detected": [{{"type": "...", "severity": "mild|moderate|severe", "description": "...", "confidence": 0.0}}],
"treatments": [{{"category": "...", "recommendation": "...", "priority": "low|medium|high", "timeframe": "..."}}],
"summary": "..."}}

Important:
- Return ONLY valid JSON, no additional text
- If a metric has no unit, omit the "unit" field or set it to null
- Extract all numerical health metrics you can identify
- Use standard medical terminology for metric names"""

RISK_PROMPT = """Based on the following patient data, provide a dermatology-focused health check in Markdown:

Lab Report Data: {lab_data}
Facial Analysis: {visual_metrics}
Patient Info: {user_data}

Focus on:
1. Any lab values outside normal ranges that are relevant to the skin
2. Visual indicators (high redness or yellowness percentages)
3. Potential risks based on the combination of data
4. Recommendations for follow-up or medical consultation

Include sections "Immediate Concerns (High Priority)" and "Moderate Concerns (Monitor)" as bullet lists,
and a line "Overall Risk Level: Low|Moderate|Elevated|High".
Keep the assessment professional, clear, and actionable."""


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` block from a model reply."""
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


class GeminiAnalyzer:
    """Analyzer backed by the hosted Gemini model."""

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None):
        key = api_key or settings.GEMINI_API_KEY
        if not key:
            raise AIServiceError("Gemini API key is required. Set GEMINI_API_KEY environment variable.")

        genai.configure(api_key=key)
        self.model_name = model_name or settings.GEMINI_MODEL
        self.model = genai.GenerativeModel(self.model_name)

    async def _generate(self, prompt: str, temperature: float, max_output_tokens: Optional[int] = None) -> str:
        config = genai.types.GenerationConfig(
            temperature=temperature,
            max_output_tokens=max_output_tokens
        )
        try:
            response = await self.model.generate_content_async(prompt, generation_config=config)
            text = response.text.strip()
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Gemini API error: {str(e)}")
            raise AIServiceError(f"Gemini API error: {str(e)}")
        except ValueError as e:
            # response.text raises ValueError when the reply was blocked
            logger.error(f"Gemini returned no text: {str(e)}")
            raise AIServiceError(f"Gemini API error: {str(e)}")

        if not text:
            raise AIServiceError("Empty response received from Gemini")
        return text

    async def structure_ocr_data(self, raw_text: str) -> StructuredReport:
        """
        Convert raw OCR text into structured report data.

        Raises:
            ValueError: when the text is empty
            AIServiceError: when the call fails or the reply is not valid JSON
        """
        if not raw_text or not raw_text.strip():
            raise ValueError("Raw text cannot be empty")

        reply = strip_code_fences(await self._generate(STRUCTURE_PROMPT.format(raw_text=raw_text), 0.1))

        try:
            data = json.loads(reply)
        except json.JSONDecodeError as e:
            raise AIServiceError(f"Invalid JSON response: {str(e)}")

        if not isinstance(data, dict):
            raise AIServiceError("Response is not a JSON object")
        if not isinstance(data.get("metrics"), list):
            raise AIServiceError("Response missing valid metrics array")

        for metric in data["metrics"]:
            if isinstance(metric, dict) and metric.get("value") is not None:
                metric["value"] = str(metric["value"])

        try:
            return StructuredReport.model_validate(data)
        except ValueError as e:
            raise AIServiceError(f"Unexpected response structure: {str(e)}")

    async def generate_risk_assessment(
        self,
        lab_data: Optional[Dict[str, Any]],
        visual_metrics: Optional[Dict[str, Any]],
        user_data: Dict[str, Any]
    ) -> str:
        if not lab_data and not visual_metrics:
            raise ValueError("At least one data source (lab data or visual metrics) is required")
        if user_data is None:
            raise ValueError("User data is required")

        prompt = RISK_PROMPT.format(
            lab_data=json.dumps(lab_data, indent=2, default=str),
            visual_metrics=json.dumps(visual_metrics, indent=2, default=str),
            user_data=json.dumps(user_data, indent=2, default=str)
        )
        return await self._generate(prompt, 0.3)

    async def generate_health_insights(self, prompt: str) -> str:
        if not prompt or not prompt.strip():
            raise ValueError("Prompt cannot be empty")
        return await self._generate(prompt, 0.4, max_output_tokens=1000)
