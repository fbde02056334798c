from typing import Literal

from pydantic import BaseModel, Field


class SuggestedTest(BaseModel):
    """Diagnostic test the assistant recommends for the patient."""
    name: str = Field(description="Name of the diagnostic test, e.g. 'Complete Blood Count'")
    reason: str | None = Field(default=None, description="Why the test is recommended")
    priority: Literal["low", "medium", "high"] = Field(default="medium", description="Clinical urgency of the test")


class SuggestedDoctor(BaseModel):
    """Doctor the assistant recommends reviewing the case."""
    doctor_id: str = Field(description="Identifier of the recommended doctor")
    reason: str | None = Field(default=None, description="Why this doctor fits the case")


class AIAssessment(BaseModel):
    """Structured assessment of a symptom conversation."""
    summary: str = Field(description="Natural-language summary of the patient's symptoms and likely causes")
    suggested_tests: list[SuggestedTest] = Field(default_factory=list)
    suggested_doctor: SuggestedDoctor | None = None
