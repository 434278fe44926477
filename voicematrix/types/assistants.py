"""
Models for AI phone assistants.

AssistantCreateRequest mirrors the form the dashboard submits. Its fields are
deliberately loose; business validation happens in
voicematrix.services.assistants.validate_assistant_request so that every
problem is reported at once as a 400.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class EvaluationMethod(str, Enum):
    NUMERIC_SCALE = "NumericScale"
    DESCRIPTIVE_SCALE = "DescriptiveScale"
    CHECKLIST = "Checklist"
    BINARY_EVALUATION = "BinaryEvaluation"
    NO_EVALUATION = "NoEvaluation"


BACKGROUND_SOUNDS = ("office", "cafe", "nature", "none")

PERSONALITY_TRAITS = (
    "Professional",
    "Friendly",
    "Energetic",
    "Calming",
    "Confident",
    "Empathetic",
    "Witty",
    "Patient",
    "Knowledgeable",
    "Supportive",
)

MAX_PERSONALITY_TRAITS = 5
MAX_STRUCTURED_QUESTIONS = 10
MIN_CALL_DURATION_SECONDS = 30
MAX_CALL_DURATION_SECONDS = 1800
DEFAULT_CALL_DURATION_SECONDS = 300


class StructuredQuestion(BaseModel):
    """A question the assistant must ask; answers land in structured data."""

    question: str = ""
    description: Optional[str] = None
    required: bool = False
    field_name: Optional[str] = None
    type: str = "string"


class AssistantCreateRequest(BaseModel):
    name: Optional[str] = None
    first_message: Optional[str] = None
    voice_id: Optional[str] = None
    max_call_duration: Optional[int] = None
    background_sound: Optional[str] = None
    evaluation_method: Optional[str] = None
    personality_traits: Optional[Union[List[str], str]] = None
    structured_questions: List[StructuredQuestion] = Field(default_factory=list)

    def traits_list(self) -> List[str]:
        if self.personality_traits is None:
            return []
        if isinstance(self.personality_traits, str):
            return [self.personality_traits]
        return list(self.personality_traits)


class AssistantUpdateRequest(BaseModel):
    name: Optional[str] = None
    first_message: Optional[str] = None
    voice_id: Optional[str] = None
    max_call_duration: Optional[int] = None


class Assistant(BaseModel):
    """An assistant row. configuration keeps the submitted form."""

    id: str
    account_id: str
    name: str
    vapi_assistant_id: Optional[str] = None
    configuration: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
