# kozi_agent/core/intent_classifier.py
from __future__ import annotations
import logging
import re
from typing import Optional, Pattern, Sequence, Tuple

from kozi_agent.core.errors import ClassificationAmbiguous
from kozi_agent.core.gemini_client import GeminiClient
from kozi_agent.core.llm_output import extract_json
from kozi_agent.core.models import ClassificationResult, Intent, Role
from kozi_agent.prompts.versioned.v1.classifier import CLASSIFIER_PROMPT

logger = logging.getLogger(__name__)

_END = r"\s*[.!?]*\s*$"
# Recognized phrasings answered without a model call. First match wins.
RECOGNIZED_PHRASES: Sequence[Tuple[Pattern[str], Intent]] = (
    (re.compile(r"^\s*(?:hi|hello|hey|good (?:morning|afternoon|evening)|thanks|thank you)(?: kozi)?" + _END, re.I),
     Intent.CONVERSATIONAL),
    (re.compile(r"^\s*(?:check|show|open)(?: me)?(?: my)? (?:e-?mails?|inbox|unread e-?mails?|gmail)" + _END, re.I),
     Intent.MAILBOX_ACTION),
    (re.compile(r"^\s*(?:show|list|get)(?: me)?(?: all)?(?: the)? "
                r"(?:job ?seekers|employers|jobs|recent jobs|payments|pending payments|applications|users)" + _END, re.I),
     Intent.DATA_QUERY),
)

PLATFORM_HELP = "I'm here to help with Kozi platform requests. Please tell me more about your question."
GREETING = "Hello! I'm the Kozi assistant. Ask me about jobs, candidates, employers or how to use the platform."
ADMIN_ONLY_MAIL = "You need admin access to check emails. You can ask me for job or platform info instead."
ROLE_GUIDANCE = {
    Role.JOB_SEEKER: (
        "To match you with the best opportunities, please tell me:\n"
        "• Your skills or profession\n• Your experience level\n• Preferred work location"
    ),
    Role.EMPLOYER: (
        "Great! To help you find the right candidate, please provide:\n"
        "• Type of worker (basic or advanced professional)\n"
        "• The role (e.g., cleaner, chef, marketing expert)\n• Urgency or start date"
    ),
}
WIRE_TYPES = {"chat": Intent.CONVERSATIONAL, "sql": Intent.DATA_QUERY, "gmail": Intent.MAILBOX_ACTION}


def prefilter(utterance: str) -> Optional[Intent]:
    for pattern, intent in RECOGNIZED_PHRASES:
        if pattern.match(utterance or ""):
            return intent
    return None


def parse_classification(raw: str) -> Tuple[Intent, Optional[str]]:
    """Parse {"type": ..., "response": ...}; raises ClassificationAmbiguous otherwise."""
    obj = extract_json(raw)
    if not obj:
        raise ClassificationAmbiguous("classifier output is not JSON")
    wire = str(obj.get("type") or "").strip().lower()
    intent = WIRE_TYPES.get(wire)
    if intent is None:
        try:
            intent = Intent(wire)
        except ValueError:
            raise ClassificationAmbiguous(f"unknown intent type {wire!r}")
    response = obj.get("response")
    text = str(response).strip() if response is not None else ""
    return intent, text or None


class IntentClassifier:
    """
    Assigns exactly one intent per utterance.

    Order: recognized phrasings, then the model. Unusable model output falls
    back to conversational; classification never raises.
    """

    def __init__(self, llm: GeminiClient):
        self.llm = llm

    def classify(self, utterance: str, role: Role) -> ClassificationResult:
        text = (utterance or "").strip()
        if not text:
            return self._apply_role_gate(ClassificationResult(Intent.CONVERSATIONAL, PLATFORM_HELP, source="fallback"), role)

        quick = prefilter(text)
        if quick is not None:
            reply = GREETING if quick is Intent.CONVERSATIONAL else None
            return self._apply_role_gate(ClassificationResult(quick, reply, source="keyword"), role)

        raw = self.llm.classify(CLASSIFIER_PROMPT.format(ROLE=role.value, MESSAGE=text.replace('"', "'")))
        try:
            intent, response = parse_classification(raw)
            result = ClassificationResult(intent, response, source="model")
        except ClassificationAmbiguous as ex:
            logger.info("Classifier output unusable (%s); defaulting to conversational", ex)
            result = ClassificationResult(Intent.CONVERSATIONAL, None, source="fallback")
        return self._apply_role_gate(result, role)

    @staticmethod
    def _apply_role_gate(result: ClassificationResult, role: Role) -> ClassificationResult:
        # the mailbox dispatcher re-checks the role; this only shapes the reply
        if role is not Role.ADMIN and result.intent is Intent.MAILBOX_ACTION:
            return ClassificationResult(Intent.CONVERSATIONAL, ADMIN_ONLY_MAIL, source="role-gate")
        if result.intent is Intent.CONVERSATIONAL and not result.response and result.source == "fallback":
            result.response = ROLE_GUIDANCE.get(role, PLATFORM_HELP)
        return result
