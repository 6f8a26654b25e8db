"""
Data Model for DocDecode
Input payloads, analysis requests, the DischargeAnalysis response schema,
history records and chat messages.
"""

import base64
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from docdecode.errors import MalformedModelResponse

logger = logging.getLogger(__name__)

# ── Input payloads ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TextPayload:
    """A pasted note, already trimmed."""

    text: str


@dataclass(frozen=True)
class BinaryPayload:
    """An uploaded file or camera still, inlined as base64."""

    data: str
    mime_type: str
    filename: str

    def raw_bytes(self) -> bytes:
        return base64.b64decode(self.data)


InputPayload = Union[TextPayload, BinaryPayload]


def describe(payload: InputPayload) -> str:
    """Original input description stored in history and given to chat."""
    if isinstance(payload, TextPayload):
        return payload.text
    return f"Multimodal input ({payload.filename})"


# ── Premium context ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Demographics:
    age: str
    gender: str
    location: str


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class AnalysisRequest:
    payload: InputPayload
    premium: bool = False
    demographics: Optional[Demographics] = None
    geo: Optional[GeoPoint] = None

    @classmethod
    def create(
        cls,
        payload: InputPayload,
        premium: bool = False,
        demographics: Optional[Demographics] = None,
        geo: Optional[GeoPoint] = None,
    ) -> "AnalysisRequest":
        """Build a request; premium context is dropped unless *premium* is set."""
        if not premium:
            return cls(payload=payload)
        return cls(payload=payload, premium=True, demographics=demographics, geo=geo)


# ── DischargeAnalysis (model response schema) ──────────────────────────────────


class _Lenient(BaseModel):
    # The model sometimes sends null for optional string properties.
    @field_validator("*", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class Slide(BaseModel):
    topic: str
    content: str
    laymanSummary: str


class Reminder(_Lenient):
    title: str = ""
    date: str = ""
    description: str = ""


class Place(_Lenient):
    name: str = ""
    address: str = ""
    uri: str = ""


class DischargeAnalysis(BaseModel):
    overallSummary: str
    slides: List[Slide] = Field(min_length=1)
    demographicInsights: Optional[str] = None
    reminders: Optional[List[Reminder]] = None
    nearbyFollowUp: Optional[List[Place]] = None

    def to_json(self) -> str:
        """Serialized form stored in history and embedded in the chat context."""
        return self.model_dump_json(exclude_none=True)


def _extract_json(text: str) -> Optional[Dict]:
    """Extract the first JSON object found in *text*."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Find JSON block between ```json ... ``` or { ... }
    patterns = [
        r"```json\s*([\s\S]+?)\s*```",
        r"```\s*([\s\S]+?)\s*```",
        r"(\{[\s\S]+\})",
    ]
    for pat in patterns:
        match = re.search(pat, text)
        if match:
            try:
                return json.loads(match.group(1))
            except json.JSONDecodeError:
                continue
    return None


def parse_analysis(text: Optional[str]) -> DischargeAnalysis:
    """
    Parse raw model output as a DischargeAnalysis.

    Raises MalformedModelResponse for empty text, text without a JSON
    object, or JSON that does not match the schema (including no slides).
    """
    if not text or not text.strip():
        raise MalformedModelResponse("Model returned an empty response")

    data = _extract_json(text)
    if not isinstance(data, dict):
        raise MalformedModelResponse("Model response is not a JSON object")

    try:
        return DischargeAnalysis.model_validate(data)
    except ValidationError as exc:
        logger.debug("Schema validation failed: %s", exc)
        raise MalformedModelResponse(
            f"Model response does not match the analysis schema "
            f"({exc.error_count()} error(s))"
        ) from exc


# ── History & chat records ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class HistoryRecord:
    id: int
    timestamp: str
    original_input: str
    analysis_json: str

    def analysis(self) -> DischargeAnalysis:
        return parse_analysis(self.analysis_json)


@dataclass(frozen=True)
class ChatMessage:
    role: str  # "user" | "model"
    text: str
