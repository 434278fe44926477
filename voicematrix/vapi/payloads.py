"""
Builders for Vapi request bodies.

The system prompt is assembled from the assistant form: personality traits,
the structured questions (required ones asked straight after the greeting),
and the evaluation rubric.
"""

import re
from typing import Any, Dict, List, Optional

from voicematrix.config import VapiSettings
from voicematrix.types.assistants import (
    DEFAULT_CALL_DURATION_SECONDS,
    AssistantCreateRequest,
    AssistantUpdateRequest,
    EvaluationMethod,
    StructuredQuestion,
)

DEFAULT_VOICE_ID = "Elliot"
DEFAULT_BACKGROUND_SOUND = "office"
DEFAULT_TRAITS = ["Professional", "Friendly"]
END_CALL_MESSAGE = "Thank you for calling! Have a great day!"
ANALYSIS_TIMEOUT_SECONDS = 30

PERSONALITY_INSTRUCTIONS: Dict[str, str] = {
    "Professional": "Maintain a business-like tone while being warm and approachable. Use clear, direct language.",
    "Friendly": "Be warm, welcoming, and personable. Use a conversational tone that makes callers feel comfortable.",
    "Energetic": "Speak with enthusiasm and positive energy. Be upbeat and engaging throughout the conversation.",
    "Calming": "Use a soothing, measured tone. Help anxious callers feel at ease with your peaceful presence.",
    "Confident": "Speak with authority and certainty. Demonstrate expertise and competence in your responses.",
    "Empathetic": "Show genuine understanding and compassion. Acknowledge caller emotions and concerns.",
    "Witty": "Use appropriate humor and clever responses when suitable. Keep the mood light and engaging.",
    "Patient": "Never rush callers. Take time to explain things clearly and repeat information when needed.",
    "Knowledgeable": "Demonstrate expertise and provide detailed, accurate information when appropriate.",
    "Supportive": "Be encouraging and helpful. Focus on solutions and positive outcomes.",
}

EVALUATION_INSTRUCTIONS: Dict[str, str] = {
    EvaluationMethod.NUMERIC_SCALE.value: (
        "CALL SUCCESS METRICS:\nAim for high-quality interactions that would rate 8-10 on a "
        "satisfaction scale. Focus on resolution, clarity, and caller satisfaction."
    ),
    EvaluationMethod.DESCRIPTIVE_SCALE.value: (
        'CALL SUCCESS METRICS:\nStrive for "Excellent" interactions by being thorough, '
        "helpful, and professional throughout the call."
    ),
    EvaluationMethod.CHECKLIST.value: (
        "CALL SUCCESS METRICS:\nEnsure all objectives are met systematically. Check off each "
        "goal as you accomplish it during the conversation."
    ),
    EvaluationMethod.BINARY_EVALUATION.value: (
        "CALL SUCCESS METRICS:\nFocus on achieving a clear successful outcome. Either fully "
        "accomplish the call objectives or clearly explain why objectives cannot be met."
    ),
}

_CALL_FLOW = """CALL OBJECTIVES:
- Gather required information immediately after greeting
- Provide excellent customer service efficiently
- Maintain a natural, conversational flow
- End calls professionally when objectives are met

CONVERSATION FLOW (STRICT ORDER):
1. Warm greeting (5-10 seconds)
2. Ask required questions (next 20-30 seconds)
3. Address caller's needs/concerns
4. Confirm collected information
5. Professional closing

CONVERSATION GUIDELINES:
- Greet warmly but briefly
- Transition quickly to information gathering
- Confirm important information by repeating it back
- Keep responses concise and focused"""

_QUESTION_STRATEGY = """QUESTION STRATEGY FOR SHORT CALLS:
- Ask required questions right after "Hello, thanks for calling"
- Use transition phrases: "To help you better, I need to quickly get..."
- If the caller explains their issue first, say "I'll help with that right after I get your details"
- For hesitant callers: "This will just take 10 seconds so I can better assist you\""""


def build_personality_instructions(traits: List[str]) -> str:
    instructions = [PERSONALITY_INSTRUCTIONS[t] for t in traits if t in PERSONALITY_INSTRUCTIONS]
    if not instructions:
        return "Be professional, friendly, and helpful in all interactions."
    return " ".join(instructions)


def _question_line(index: int, question: StructuredQuestion) -> str:
    purpose = f" ({question.description})" if question.description else ""
    return f'{index}. "{question.question}"{purpose}'


def build_question_instructions(questions: List[StructuredQuestion]) -> str:
    if not questions:
        return ""

    required = [q for q in questions if q.required]
    optional = [q for q in questions if not q.required]
    lines = ["INFORMATION COLLECTION (SHORT CALL STRATEGY):"]

    if required:
        lines.append("REQUIRED INFORMATION (ASK IMMEDIATELY AFTER GREETING - FIRST 30 SECONDS):")
        lines.extend(_question_line(i, q) for i, q in enumerate(required, start=1))

    if optional:
        lines.append("")
        lines.append("OPTIONAL INFORMATION (only if time permits after required info):")
        lines.extend(_question_line(i, q) for i, q in enumerate(optional, start=1))

    lines.append("")
    lines.append(_QUESTION_STRATEGY)
    return "\n".join(lines)


def build_evaluation_instructions(evaluation_method: Optional[str]) -> str:
    if not evaluation_method:
        return ""
    return EVALUATION_INSTRUCTIONS.get(evaluation_method, "")


def build_system_prompt(request: AssistantCreateRequest) -> str:
    traits = request.traits_list() or DEFAULT_TRAITS
    sections = [
        "You are a professional AI phone assistant for a business. "
        + build_personality_instructions(traits),
        "CRITICAL: This is a SHORT CALL (limited time). You MUST ask essential questions "
        "within the first 30 seconds after greeting.",
    ]
    questions = build_question_instructions(request.structured_questions)
    if questions:
        sections.append(questions)
    sections.append(_CALL_FLOW)
    evaluation = build_evaluation_instructions(request.evaluation_method)
    if evaluation:
        sections.append(evaluation)
    sections.append(
        "IMPORTANT: Time is limited! Prioritize getting required information over lengthy "
        "conversations."
    )
    return "\n\n".join(sections)


def _field_name(question: StructuredQuestion) -> str:
    if question.field_name:
        return question.field_name
    return re.sub(r"[^a-z0-9]", "_", question.question.lower())


def build_structured_data_schema(questions: List[StructuredQuestion]) -> Optional[Dict[str, Any]]:
    """JSON schema Vapi fills from the transcript; None without questions."""
    if not questions:
        return None

    properties: Dict[str, Any] = {}
    required: List[str] = []
    for question in questions:
        name = _field_name(question)
        properties[name] = {
            "type": question.type or "string",
            "description": question.description or question.question,
        }
        if question.required:
            required.append(name)

    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "description": "Structured data extracted from the conversation",
    }


def build_assistant_payload(
    request: AssistantCreateRequest,
    settings: Optional[VapiSettings] = None,
) -> Dict[str, Any]:
    """Build the POST /assistant body for a validated create request."""
    payload: Dict[str, Any] = {
        "name": request.name,
        "model": {
            "provider": "openai",
            "model": "gpt-4o-mini",
            "messages": [{"role": "system", "content": build_system_prompt(request)}],
            "maxTokens": 500,
            "temperature": 0.7,
        },
        "voice": {
            "provider": "vapi",
            "voiceId": request.voice_id or DEFAULT_VOICE_ID,
        },
        "transcriber": {
            "provider": "deepgram",
            "model": "nova-3-general",
            "language": "en",
        },
        "firstMessage": request.first_message,
        "firstMessageMode": "assistant-speaks-first",
        "maxDurationSeconds": request.max_call_duration or DEFAULT_CALL_DURATION_SECONDS,
        "backgroundSound": request.background_sound or DEFAULT_BACKGROUND_SOUND,
        "recordingEnabled": True,
        "fillersEnabled": True,
        "endCallFunctionEnabled": False,
        "dialKeypadFunctionEnabled": False,
        "silenceTimeoutSeconds": 30,
        "responseDelaySeconds": 0.4,
        "endCallMessage": END_CALL_MESSAGE,
    }

    schema = build_structured_data_schema(request.structured_questions)
    evaluates = bool(request.evaluation_method) and (
        request.evaluation_method != EvaluationMethod.NO_EVALUATION.value
    )
    if schema or evaluates:
        analysis_plan: Dict[str, Any] = {
            "minMessagesThreshold": 2,
            "summaryPlan": {"enabled": True, "timeoutSeconds": ANALYSIS_TIMEOUT_SECONDS},
        }
        if schema:
            analysis_plan["structuredDataPlan"] = {
                "enabled": True,
                "schema": schema,
                "timeoutSeconds": ANALYSIS_TIMEOUT_SECONDS,
            }
        if evaluates:
            analysis_plan["successEvaluationPlan"] = {
                "rubric": request.evaluation_method,
                "enabled": True,
                "timeoutSeconds": ANALYSIS_TIMEOUT_SECONDS,
            }
        payload["analysisPlan"] = analysis_plan

    if settings is not None and settings.make_webhook_url:
        secret = (
            settings.make_webhook_secret.get_secret_value()
            if settings.make_webhook_secret
            else None
        )
        server: Dict[str, Any] = {
            "url": settings.make_webhook_url,
            "headers": {"Content-Type": "application/json"},
        }
        if secret:
            server["secret"] = secret
            server["headers"]["x-make-apikey"] = secret
        payload["server"] = server
        payload["serverMessages"] = ["end-of-call-report"]
        payload["clientMessages"] = ["transcript"]

    return payload


def build_assistant_update_payload(request: AssistantUpdateRequest) -> Dict[str, Any]:
    """PATCH /assistant body containing only the fields that changed."""
    payload: Dict[str, Any] = {}
    if request.name is not None:
        payload["name"] = request.name
    if request.first_message is not None:
        payload["firstMessage"] = request.first_message
    if request.voice_id is not None:
        payload["voice"] = {"provider": "vapi", "voiceId": request.voice_id}
    if request.max_call_duration is not None:
        payload["maxDurationSeconds"] = request.max_call_duration
    return payload


def build_phone_number_payload(
    phone_number: str,
    friendly_name: str,
    twilio_account_sid: str,
    twilio_auth_token: str,
    vapi_assistant_id: Optional[str] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "provider": "twilio",
        "number": phone_number,
        "twilioAccountSid": twilio_account_sid,
        "twilioAuthToken": twilio_auth_token,
        "name": friendly_name,
    }
    if vapi_assistant_id:
        payload["assistantId"] = vapi_assistant_id
    return payload
