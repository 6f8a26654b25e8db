"""
Follow-up Chat for DocDecode
Binds a completed analysis to a conversation and keeps the append-only
transcript. A failed model turn appends an apology; user turns are never
rolled back.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from docdecode.errors import TransportError
from docdecode.schema import ChatMessage, DischargeAnalysis

logger = logging.getLogger(__name__)

EMPTY_REPLY_TEXT = "I'm sorry, I couldn't process that."
APOLOGY_TEXT = "Sorry, I encountered an error. Please try again."

_SYSTEM_INSTRUCTION = """You are a helpful medical assistant called DocDecode.
Your goal is to answer follow-up questions about a patient's discharge note.
You have access to the original note and the simplified explanation provided to the user.
Always use simple, empathetic language. Avoid jargon. If you must use a medical term, explain it.

Original Note:
{original_input}

Simplified Explanation:
{analysis_json}

If the user asks something not covered in the note, advise them to contact their healthcare provider."""


@dataclass(frozen=True)
class ChatContext:
    """Fixed system context for the conversation about one analysis."""

    original_input: str
    analysis: DischargeAnalysis

    @property
    def system_instruction(self) -> str:
        return _SYSTEM_INSTRUCTION.format(
            original_input=self.original_input,
            analysis_json=self.analysis.to_json(),
        )


class ChatHandle(Protocol):
    def send_message(self, text: str) -> str:
        ...


class Conversation:
    """
    Transcript plus the idle/busy sub-machine for one ChatContext.

    The chat handle is opened on the first send through *opener*.
    """

    def __init__(self, context: ChatContext, opener: Callable[[ChatContext], ChatHandle]):
        self.context = context
        self._opener = opener
        self._handle: Optional[ChatHandle] = None
        self.messages: List[ChatMessage] = []
        self.busy = False

    # ------------------------------------------------------------------
    def send(self, text: str) -> bool:
        """
        Send one user message. Returns False when the message is rejected
        (blank, or a previous send is still outstanding).
        """
        query = (text or "").strip()
        if not query or self.busy:
            return False

        self.messages.append(ChatMessage(role="user", text=query))
        self.busy = True
        try:
            if self._handle is None:
                self._handle = self._opener(self.context)
            reply = self._handle.send_message(query)
            self.messages.append(ChatMessage(role="model", text=reply or EMPTY_REPLY_TEXT))
        except TransportError as exc:
            logger.error("Chat failed: %s", exc)
            self.messages.append(ChatMessage(role="model", text=APOLOGY_TEXT))
        finally:
            self.busy = False
        return True
