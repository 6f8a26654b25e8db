"""
Request Builder for DocDecode
Turns an AnalysisRequest into the exact outbound Gemini request: instruction
text, content parts, response schema, model identifier and grounding.
Pure assembly, no I/O.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from docdecode.config import Config
from docdecode.schema import AnalysisRequest, BinaryPayload, GeoPoint, TextPayload

# ── Prompt templates ───────────────────────────────────────────────────────────

_BASE_PROMPT = """Analyze the following medical document (it could be a discharge note, an X-ray image, a lab chart, or a prescription) and explain it in layman's terms.

If it is a text document (like a discharge note):
Break it down into logical topics (e.g., Diagnosis, Medications, Follow-up).

If it is an image of an X-ray or medical scan:
Explain what the image shows, any notable findings mentioned in the annotations or visible in the scan, and what they mean for the patient in simple terms.

If it is a chart or lab result:
Explain the key values, whether they are within normal range, and what the overall results indicate.

For all types:
Provide a clear, simple explanation for each section."""

_PREMIUM_PROMPT = """PREMIUM ANALYSIS:
The patient is a {age} year old {gender} living in {location}.
Provide a deeper comparative analysis based on these demographics. Mention if certain findings are more common or concerning for this age group or location.
Also, identify any follow-up appointments or medication reminders mentioned in the note and list them as structured reminders.
Finally, suggest nearby healthcare facilities or specialists for follow-up based on the patient's location."""

_OUTPUT_LINE = "Output the result in the specified JSON format."

NOTE_PREFIX = "Discharge Note:\n"

RESPONSE_MIME_TYPE = "application/json"

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "overallSummary": {
            "type": "STRING",
            "description": "A high-level summary of the entire discharge note in 2-3 sentences.",
        },
        "slides": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "topic": {
                        "type": "STRING",
                        "description": "The title of the topic (e.g., 'Your Diagnosis').",
                    },
                    "content": {
                        "type": "STRING",
                        "description": "Detailed layman explanation of this specific topic.",
                    },
                    "laymanSummary": {
                        "type": "STRING",
                        "description": "A one-sentence 'bottom line' for this topic.",
                    },
                },
                "required": ["topic", "content", "laymanSummary"],
            },
        },
        "demographicInsights": {
            "type": "STRING",
            "description": "Premium: Deeper analysis based on patient demographics.",
        },
        "reminders": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "title": {"type": "STRING"},
                    "date": {
                        "type": "STRING",
                        "description": "ISO format date or descriptive time",
                    },
                    "description": {"type": "STRING"},
                },
            },
        },
        "nearbyFollowUp": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "name": {"type": "STRING"},
                    "address": {"type": "STRING"},
                    "uri": {"type": "STRING"},
                },
            },
        },
    },
    "required": ["overallSummary", "slides"],
}


# ── Outbound request ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class InlinePart:
    data: str  # base64
    mime_type: str


@dataclass(frozen=True)
class OutboundRequest:
    model: str
    instruction: str
    note_text: Optional[str] = None
    inline_parts: List[InlinePart] = field(default_factory=list)
    response_schema: Dict[str, Any] = field(default_factory=lambda: RESPONSE_SCHEMA)
    response_mime_type: str = RESPONSE_MIME_TYPE
    grounding: Optional[GeoPoint] = None

    def contents(self) -> List[Any]:
        """Ordered content: the instruction, then the note or the inline parts."""
        if self.note_text is not None:
            return [self.instruction, NOTE_PREFIX + self.note_text]
        return [self.instruction, *self.inline_parts]


def build_instruction(request: AnalysisRequest) -> str:
    sections = [_BASE_PROMPT]
    if request.premium and request.demographics is not None:
        demo = request.demographics
        sections.append(
            _PREMIUM_PROMPT.format(age=demo.age, gender=demo.gender, location=demo.location)
        )
    sections.append(_OUTPUT_LINE)
    return "\n\n".join(sections)


def select_model(request: AnalysisRequest, config: Config) -> str:
    return config.premium_model if request.premium else config.standard_model


def build_request(request: AnalysisRequest, config: Optional[Config] = None) -> OutboundRequest:
    """Assemble the outbound request for *request*."""
    config = config or Config()
    payload = request.payload

    note_text: Optional[str] = None
    inline_parts: List[InlinePart] = []
    if isinstance(payload, TextPayload):
        note_text = payload.text
    elif isinstance(payload, BinaryPayload):
        inline_parts = [InlinePart(data=payload.data, mime_type=payload.mime_type)]
    else:
        raise TypeError(f"Unsupported payload type: {type(payload).__name__}")

    grounding = request.geo if request.premium else None

    return OutboundRequest(
        model=select_model(request, config),
        instruction=build_instruction(request),
        note_text=note_text,
        inline_parts=inline_parts,
        grounding=grounding,
    )
