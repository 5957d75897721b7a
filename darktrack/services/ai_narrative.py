import json
import logging
from typing import Any, List, Optional

from openai import OpenAI
from pydantic import BaseModel

from darktrack.core.config import get_openai_api_key, get_openai_model, get_openai_timeout
from darktrack.core.errors import UpstreamDegraded
from darktrack.schemas.scan import BreachRecord, NarrativeResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a cybersecurity expert providing clear, actionable security advice. "
    "Be concise and specific."
)

FALLBACK_SUMMARY = (
    "Your email has been found in data breaches. "
    "Immediate action is recommended to secure your accounts."
)

FALLBACK_RECOMMENDATIONS = [
    "Change passwords for all affected accounts immediately",
    "Enable two-factor authentication (2FA) wherever possible",
    "Monitor your accounts for suspicious activity",
    "Use a password manager to create unique, strong passwords",
    "Consider using identity monitoring services",
]

DEFAULT_SUMMARY = "Analysis completed successfully."

DEFAULT_RECOMMENDATIONS = [
    "Enable two-factor authentication on all accounts",
    "Change passwords for affected accounts",
    "Monitor accounts for suspicious activity",
]


def fallback_narrative() -> NarrativeResult:
    return NarrativeResult(
        summary=FALLBACK_SUMMARY,
        recommendations=list(FALLBACK_RECOMMENDATIONS),
    )


def _format_breach_line(breach: BreachRecord) -> str:
    affected = f"{breach.pwn_count:,}" if breach.pwn_count is not None else "unknown"
    return f"- {breach.name} ({breach.severity} severity, {affected} affected accounts)"


def build_prompt(email: str, breaches: List[BreachRecord], risk_score: int) -> str:
    breach_lines = "\n".join(_format_breach_line(b) for b in breaches) or "- None"

    return f"""You are a cybersecurity expert analyzing a user's digital footprint.

Email: {email}
Number of breaches: {len(breaches)}
Risk Score: {risk_score}/100

Breaches found:
{breach_lines}

Provide:
1. A concise summary (2-3 sentences) of the security risk level and main concerns
2. 3-5 specific, actionable recommendations to improve security

Respond in JSON format:
{{
  "summary": "Brief summary of findings",
  "recommendations": ["Recommendation 1", "Recommendation 2", ...]
}}"""


def extract_payload(message: Any) -> dict:
    """
    Accepts both structured-output messages (`parsed`) and plain
    text content that contains a JSON object.
    """
    parsed = getattr(message, "parsed", None)
    if isinstance(parsed, dict):
        return parsed
    if isinstance(parsed, BaseModel):
        return parsed.model_dump()

    raw = getattr(message, "content", None) or ""
    start, end = raw.find("{"), raw.rfind("}")
    if start == -1 or end < start:
        raise ValueError("No JSON object in model response")

    payload = json.loads(raw[start: end + 1])
    if not isinstance(payload, dict):
        raise ValueError("Model response is not a JSON object")
    return payload


def parse_narrative(payload: dict) -> NarrativeResult:
    summary = payload.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        summary = DEFAULT_SUMMARY

    recommendations = payload.get("recommendations")
    if not isinstance(recommendations, list):
        recommendations = []
    recommendations = [r.strip() for r in recommendations if isinstance(r, str) and r.strip()]
    if not recommendations:
        recommendations = list(DEFAULT_RECOMMENDATIONS)

    return NarrativeResult(summary=summary.strip(), recommendations=recommendations)


class NarrativeClient:
    """
    Turns breach data into a summary and recommendations.
    generate() never raises; any failure yields fallback_narrative().
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        timeout: float = 20.0,
        client: Optional[OpenAI] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_env(cls) -> "NarrativeClient":
        return cls(
            api_key=get_openai_api_key(),
            model=get_openai_model(),
            timeout=get_openai_timeout(),
        )

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise UpstreamDegraded("OPENAI_API_KEY not set")
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def generate(self, email: str, breaches: List[BreachRecord], risk_score: int) -> NarrativeResult:
        try:
            client = self._get_client()
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(email, breaches, risk_score)},
                ],
                response_format={"type": "json_object"},
                max_completion_tokens=1024,
            )
            payload = extract_payload(response.choices[0].message)
            return parse_narrative(payload)

        except UpstreamDegraded as exc:
            logger.warning("AI analysis unavailable: %s", exc.message)
            return fallback_narrative()
        except Exception:
            logger.exception("AI analysis failed")
            return fallback_narrative()
