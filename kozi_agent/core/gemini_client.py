# kozi_agent/core/gemini_client.py
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, List

import google.generativeai as genai
from google.api_core.exceptions import GoogleAPIError, ResourceExhausted, TooManyRequests
from google.auth.exceptions import GoogleAuthError
from google.generativeai.types import BlockedPromptException, StopCandidateException

logger = logging.getLogger(__name__)

# classification: short and deterministic
CLASSIFY_CONFIG: Dict[str, Any] = {"temperature": 0.0, "max_output_tokens": 300}
# SQL and mail plans
GENERATE_CONFIG: Dict[str, Any] = {"temperature": 0.0, "max_output_tokens": 1024}
CHAT_CONFIG: Dict[str, Any] = {"temperature": 0.3, "max_output_tokens": 1024}

QUOTA_ERRORS = (ResourceExhausted, TooManyRequests)
# GoogleAPIError covers RetryError (deadline exceeded) as well as call errors
BACKEND_ERRORS = (
    GoogleAPIError,
    GoogleAuthError,
    BlockedPromptException,
    StopCandidateException,
    RuntimeError,
    ValueError,
)


def response_text(resp: Any) -> str:
    """Text of a non-streamed response; "" for blocked or empty candidates."""
    try:
        text = resp.text
    except (AttributeError, ValueError):
        # .text raises ValueError when the candidate has no parts
        text = ""
    if text:
        return text
    try:
        return resp.candidates[0].content.parts[0].text or ""
    except (AttributeError, IndexError, TypeError):
        return ""


@dataclass
class GeminiClient:
    """
    Completion backend for the classifier, synthesizer, mailbox planner and
    conversational answers. A quota error on the primary model is retried once
    on the fallback model; every other failure degrades to empty output.
    """
    api_key: str
    model: str = "gemini-1.5-pro"
    fallback_model: str = "gemini-1.5-flash"
    _models: List[Any] = field(init=False, repr=False, default_factory=list)

    def __post_init__(self) -> None:
        genai.configure(api_key=self.api_key)
        self._models = [genai.GenerativeModel(self.model)]
        if self.fallback_model and self.fallback_model != self.model:
            self._models.append(genai.GenerativeModel(self.fallback_model))

    def _generate(self, prompt: str, config: Dict[str, Any], *, stream: bool = False):
        for i, m in enumerate(self._models):
            try:
                return m.generate_content(prompt, generation_config=config, stream=stream)
            except QUOTA_ERRORS:
                if i == len(self._models) - 1:
                    raise
                logger.warning("Model %s rate limited; using %s", self.model, self.fallback_model)
        raise RuntimeError("no generative model configured")

    def _complete(self, prompt: str, config: Dict[str, Any]) -> str:
        try:
            return response_text(self._generate(prompt, config))
        except BACKEND_ERRORS as ex:
            logger.warning("Completion call failed: %s", type(ex).__name__)
            return ""

    def classify(self, prompt: str) -> str:
        """Returns "" when the backend fails."""
        return self._complete(prompt, CLASSIFY_CONFIG)

    def generate(self, prompt: str) -> str:
        return self._complete(prompt, GENERATE_CONFIG)

    def chat_stream(self, prompt: str) -> Generator[str, None, None]:
        try:
            for ev in self._generate(prompt, CHAT_CONFIG, stream=True):
                chunk = getattr(ev, "text", "") or ""
                if chunk:
                    yield chunk
        except BACKEND_ERRORS as ex:
            # caller falls back to a fixed help message
            logger.warning("Chat stream failed: %s", type(ex).__name__)
