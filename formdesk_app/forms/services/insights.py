"""
AI insights over a sample of form responses.

The summarizer is an external chat-completions style endpoint configured with
the ``LLM_*`` settings. Only a bounded sample of public answers is sent;
responder identity never leaves the service.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import TYPE_CHECKING, Iterable, Optional

from django.conf import settings
import requests

if TYPE_CHECKING:
    from ..models import Form, FormResponse

logger = logging.getLogger(__name__)

MAX_SAMPLE = 50

SYSTEM_PROMPT = (
    "You analyse responses to a form. Summarise the main patterns, notable "
    "outliers and anything the form owner should act on. Be concise."
)


@dataclass
class InsightsConfig:
    """Configuration for the summarization endpoint."""

    url: str
    api_key: str
    model: str
    auth_type: str = "bearer"
    timeout: int = 30

    @classmethod
    def from_settings(cls) -> Optional["InsightsConfig"]:
        """Create config from Django settings."""
        url = getattr(settings, "LLM_URL", "")
        api_key = getattr(settings, "LLM_API_KEY", "")
        if not (url and api_key):
            return None
        return cls(
            url=url,
            api_key=api_key,
            model=getattr(settings, "LLM_MODEL", ""),
            auth_type=getattr(settings, "LLM_AUTH_TYPE", "bearer"),
            timeout=getattr(settings, "LLM_TIMEOUT", 30),
        )


class ResponseInsightsService:
    """Send a response sample to the summarizer and return its text."""

    def __init__(self, config: Optional[InsightsConfig] = None):
        self.config = config or InsightsConfig.from_settings()

    @property
    def is_available(self) -> bool:
        return self.config is not None

    def _get_headers(self) -> dict:
        if self.config.auth_type == "apim":
            return {
                "Ocp-Apim-Subscription-Key": self.config.api_key,
                "Content-Type": "application/json",
            }
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def build_sample(
        self, form: Form, responses: Iterable[FormResponse]
    ) -> list[dict[str, object]]:
        """Label-keyed answers for at most ``MAX_SAMPLE`` responses."""
        labels = {
            spec.id: spec.display_name
            for spec in form.field_specs
            if spec.is_public and spec.handler.collects_input
        }
        sample = []
        for response in responses:
            if len(sample) >= MAX_SAMPLE:
                break
            answers = response.answer_map
            sample.append(
                {labels[fid]: value for fid, value in answers.items() if fid in labels}
            )
        return sample

    def summarize(
        self, form: Form, responses: Iterable[FormResponse]
    ) -> tuple[Optional[str], Optional[str]]:
        """
        Ask the summarizer for insights on ``responses``.

        Returns:
            Tuple of (summary text, error message if any)
        """
        if not self.is_available:
            return None, "AI insights are not configured"

        sample = self.build_sample(form, responses)
        if not sample:
            return None, "No responses to analyse"

        payload = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": json.dumps(
                        {
                            "title": form.title,
                            "type": form.type,
                            "responses": sample,
                        },
                        default=str,
                    ),
                },
            ],
        }

        try:
            response = requests.post(
                self.config.url,
                headers=self._get_headers(),
                json=payload,
                timeout=self.config.timeout,
            )

            if response.status_code == 401:
                logger.error("Insights API authentication failed")
                return None, "Authentication failed - check API key"

            if response.status_code != 200:
                logger.error(f"Insights API error: {response.status_code}")
                return None, f"API error: {response.status_code}"

            data = response.json()
            text = self._extract_text(data)
            if not text:
                logger.error("Insights API returned no content")
                return None, "Empty response from insights API"
            logger.info(f"Generated insights for form {form.slug} from {len(sample)} responses")
            return text, None

        except requests.exceptions.Timeout:
            logger.error("Insights API timeout")
            return None, "Request timed out"
        except requests.exceptions.RequestException as e:
            logger.error(f"Insights API request failed: {e}")
            return None, f"Request failed: {str(e)}"
        except ValueError:
            logger.error("Insights API returned invalid JSON")
            return None, "Invalid response from insights API"

    @staticmethod
    def _extract_text(data) -> str:
        # OpenAI style first, then simple {"text"|"content"} payloads
        if not isinstance(data, dict):
            return ""
        choices = data.get("choices") or []
        if choices and isinstance(choices[0], dict):
            message = choices[0].get("message") or {}
            return (message.get("content") or choices[0].get("text") or "").strip()
        return str(data.get("text") or data.get("content") or "").strip()
