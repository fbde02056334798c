import logging
from collections.abc import Sequence
from typing import Protocol

from careflow.config import settings
from careflow.errors import UpstreamUnavailable
from careflow.models.diagnosis import ConversationTurnRecord
from careflow.schemas.assessment import AIAssessment

logger = logging.getLogger(__name__)


class AIConsultant(Protocol):
    def assess(self, transcript: str) -> AIAssessment: ...


def format_transcript(turns: Sequence[ConversationTurnRecord]) -> str:
    speaker = {"patient": "Patient", "ai": "Assistant"}
    return "\n".join(f"{speaker.get(turn.role, turn.role)}: {turn.message}" for turn in turns)


class LlamaIndexConsultant:
    """Symptom triage through an OpenAI model with structured output."""

    def __init__(self, openai_api_key: str | None = None, model: str | None = None):
        self.api_key = openai_api_key or settings.openai_api_key
        self.model = model or settings.ai_model

    def assess(self, transcript: str) -> AIAssessment:
        try:
            from llama_index.llms.openai import OpenAI
            from llama_index.program.openai import OpenAIPydanticProgram
        except ImportError as exc:
            raise UpstreamUnavailable("llama_index is not installed") from exc

        if not self.api_key:
            raise UpstreamUnavailable("OPENAI_API_KEY is missing")

        llm = OpenAI(model=self.model, api_key=self.api_key, temperature=0.0)
        program = OpenAIPydanticProgram.from_defaults(
            output_cls=AIAssessment,
            llm=llm,
            prompt_template_str="""
You are a careful medical triage assistant talking with a patient before a doctor sees them.
Read the conversation below and produce a structured assessment.

Instructions:
- Summarise the reported symptoms, their duration and severity in plain language
- Do not state a definitive diagnosis; describe likely causes to be confirmed by a doctor
- Suggest only diagnostic tests that are relevant, each with a short reason
- Use priority "high" only for tests whose results a doctor must see before closing the case
- Suggest a doctor only if the conversation names one or the specialty is obvious, otherwise null

Conversation:
{transcript}
""",
        )
        try:
            return program(transcript=transcript)
        except Exception as exc:
            logger.warning("AI assessment failed: %s", exc)
            raise UpstreamUnavailable("AI consultant is unavailable") from exc


def get_ai_consultant() -> AIConsultant:
    return LlamaIndexConsultant()
