"""
Gemini Client for DocDecode
Sends outbound analysis requests to the Gemini API and opens follow-up chat
sessions. Every SDK or network failure surfaces as TransportError.
"""

import base64
import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from google import genai
from google.genai import types

from docdecode.chat import ChatContext
from docdecode.errors import TransportError
from docdecode.request_builder import InlinePart, OutboundRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelReply:
    text: str
    grounding_chunks: int = 0


def _to_sdk_contents(outbound: OutboundRequest) -> List[Any]:
    contents: List[Any] = []
    for item in outbound.contents():
        if isinstance(item, InlinePart):
            contents.append(
                types.Part.from_bytes(
                    data=base64.b64decode(item.data), mime_type=item.mime_type
                )
            )
        else:
            contents.append(item)
    return contents


def _to_sdk_config(outbound: OutboundRequest) -> types.GenerateContentConfig:
    kwargs = {
        "response_mime_type": outbound.response_mime_type,
        "response_schema": outbound.response_schema,
    }
    if outbound.grounding is not None:
        kwargs["tools"] = [types.Tool(google_maps=types.GoogleMaps())]
        kwargs["tool_config"] = types.ToolConfig(
            retrieval_config=types.RetrievalConfig(
                lat_lng=types.LatLng(
                    latitude=outbound.grounding.latitude,
                    longitude=outbound.grounding.longitude,
                )
            )
        )
    return types.GenerateContentConfig(**kwargs)


def _count_grounding_chunks(response: Any) -> int:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return 0
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []
    return len(chunks)


# ── Chat handle ────────────────────────────────────────────────────────────────


class GeminiChat:
    """Opaque chat capability: one user message in, one model message out."""

    def __init__(self, chat: Any):
        self._chat = chat

    def send_message(self, text: str) -> str:
        try:
            response = self._chat.send_message(text)
        except Exception as exc:
            logger.error("Gemini chat call failed: %s", exc)
            raise TransportError(str(exc)) from exc
        return (response.text or "").strip()


# ── Client ─────────────────────────────────────────────────────────────────────


class GeminiClient:
    """
    Process-wide handle to the Gemini API, built once from the API key.

    The session only relies on generate() and start_chat(), so tests can
    substitute any object providing those two methods.
    """

    def __init__(self, api_key: str, chat_model: str = "gemini-3-flash-preview"):
        self._api_key = api_key
        self._chat_model = chat_model
        self._client: Optional[genai.Client] = None

    # ------------------------------------------------------------------
    def _sdk(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise TransportError("No Gemini API key configured.")
            try:
                self._client = genai.Client(api_key=self._api_key)
            except Exception as exc:
                logger.error("Could not create Gemini client: %s", exc)
                raise TransportError(str(exc)) from exc
        return self._client

    # ------------------------------------------------------------------
    def generate(self, outbound: OutboundRequest) -> ModelReply:
        """Send an analysis request and return the raw reply text."""
        client = self._sdk()
        logger.info(
            "Requesting analysis from %s (grounded=%s)",
            outbound.model,
            outbound.grounding is not None,
        )
        try:
            response = client.models.generate_content(
                model=outbound.model,
                contents=_to_sdk_contents(outbound),
                config=_to_sdk_config(outbound),
            )
        except Exception as exc:
            logger.error("Gemini API call failed: %s", exc)
            raise TransportError(str(exc)) from exc

        chunks = _count_grounding_chunks(response)
        if chunks:
            # Nearby places come from the model's structured output only.
            logger.info("Ignoring %d grounding chunk(s) in response metadata.", chunks)
        return ModelReply(text=response.text or "", grounding_chunks=chunks)

    # ------------------------------------------------------------------
    def start_chat(self, context: ChatContext) -> GeminiChat:
        """Open a chat whose system instruction embeds the completed analysis."""
        client = self._sdk()
        try:
            chat = client.chats.create(
                model=self._chat_model,
                config=types.GenerateContentConfig(
                    system_instruction=context.system_instruction
                ),
            )
        except Exception as exc:
            logger.error("Could not open Gemini chat: %s", exc)
            raise TransportError(str(exc)) from exc
        return GeminiChat(chat)
