"""
Pydantic schemas for structured LLM payloads used during inference.
"""

from typing import Any, List

from pydantic import BaseModel, Field, field_validator


class InferenceItem(BaseModel):
    """One proposed connection as returned by the LLM."""

    source: str = Field(..., min_length=1, description="Source node ID")
    target: str = Field(..., min_length=1, description="Target node ID")
    type: str = Field(..., min_length=1, description="Relationship type")
    reasoning: str = Field(..., min_length=1, description="Why the connection may exist")
    confidence: float = Field(..., ge=0.0, le=1.0)

    @field_validator("source", "target", "type", "reasoning")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class InferencePayload(BaseModel):
    """Envelope for LLM inference output. Items are validated one by one."""

    inferences: List[Any] = Field(default_factory=list)


class GapPayload(BaseModel):
    """Envelope for LLM gap-analysis output."""

    gaps: List[str] = Field(default_factory=list)

    @field_validator("gaps")
    @classmethod
    def drop_blank(cls, value: List[str]) -> List[str]:
        return [gap.strip() for gap in value if gap and gap.strip()]
