"""
Analysis Session for DocDecode
State machine from a user submit to a displayed result (or a retryable
failure), plus the follow-up conversation derived from a completed result.

States:
  IDLE -> SUBMITTING -> SUCCEEDED | FAILED

Every submission carries the generation it was started under. reset() and
load() bump the generation, so late outcomes from an abandoned submission
are discarded instead of overwriting the new state.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol

from docdecode.capture import InputSelector
from docdecode.chat import ChatContext, ChatHandle, Conversation
from docdecode.config import Config
from docdecode.errors import (
    ANALYSIS_RETRY_MESSAGE,
    HistoryError,
    MalformedModelResponse,
    TransportError,
)
from docdecode.history import HistoryStore
from docdecode.request_builder import OutboundRequest, build_request
from docdecode.schema import (
    AnalysisRequest,
    Demographics,
    DischargeAnalysis,
    GeoPoint,
    HistoryRecord,
    InputPayload,
    describe,
    parse_analysis,
)

logger = logging.getLogger(__name__)


class State(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class PremiumContext:
    demographics: Optional[Demographics] = None
    geo: Optional[GeoPoint] = None


@dataclass(frozen=True)
class Submission:
    generation: int
    request: AnalysisRequest
    outbound: OutboundRequest
    original_input: str


class AnalysisModel(Protocol):
    def generate(self, outbound: OutboundRequest) -> Any:
        ...

    def start_chat(self, context: ChatContext) -> ChatHandle:
        ...


class AnalysisSession:
    """Owns the active request, result and conversation for one user."""

    def __init__(
        self,
        model: AnalysisModel,
        history: Optional[HistoryStore] = None,
        selector: Optional[InputSelector] = None,
        config: Optional[Config] = None,
        builder: Callable[[AnalysisRequest, Config], OutboundRequest] = build_request,
    ):
        self.model = model
        self._history = history
        self._config = config or Config()
        self._build = builder
        self.selector = selector or InputSelector()

        self.state = State.IDLE
        self.result: Optional[DischargeAnalysis] = None
        self.context: Optional[ChatContext] = None
        self.conversation: Optional[Conversation] = None
        self.current_slide = 0
        self.error_message: Optional[str] = None
        self.failure_kind: Optional[str] = None
        self._generation = 0

    # ── Submit ─────────────────────────────────────────────────────────────

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def busy(self) -> bool:
        return self.state == State.SUBMITTING

    # ------------------------------------------------------------------
    def begin(
        self,
        payload: Optional[InputPayload] = None,
        premium: Optional[PremiumContext] = None,
    ) -> Optional[Submission]:
        """
        Enter SUBMITTING and build the outbound request.

        Returns None while another submission is in flight. Raises
        NoInputSelected (before anything is built) when there is no input.
        """
        if self.state == State.SUBMITTING:
            logger.info("Submit ignored: an analysis is already in flight.")
            return None

        if payload is None:
            payload = self.selector.payload()

        request = AnalysisRequest.create(
            payload,
            premium=premium is not None,
            demographics=premium.demographics if premium else None,
            geo=premium.geo if premium else None,
        )
        outbound = self._build(request, self._config)

        self._generation += 1
        self.state = State.SUBMITTING
        self.error_message = None
        self.failure_kind = None
        return Submission(
            generation=self._generation,
            request=request,
            outbound=outbound,
            original_input=describe(payload),
        )

    # ------------------------------------------------------------------
    def _is_stale(self, submission: Submission) -> bool:
        if submission.generation != self._generation or self.state != State.SUBMITTING:
            logger.info(
                "Discarding stale outcome for generation %d (current %d).",
                submission.generation,
                self._generation,
            )
            return True
        return False

    # ------------------------------------------------------------------
    def complete(self, submission: Submission, reply_text: Optional[str]) -> bool:
        """Apply a model reply. Returns True only when the session succeeded."""
        if self._is_stale(submission):
            return False
        try:
            analysis = parse_analysis(reply_text)
        except MalformedModelResponse as exc:
            self._set_failed(exc)
            return False

        self._show(analysis, submission.original_input)
        self._save_history(submission.original_input, analysis)
        return True

    # ------------------------------------------------------------------
    def fail(self, submission: Submission, exc: Exception) -> bool:
        """Apply a transport failure. Returns False when the outcome is stale."""
        if self._is_stale(submission):
            return False
        self._set_failed(exc)
        return True

    # ------------------------------------------------------------------
    def submit(
        self,
        payload: Optional[InputPayload] = None,
        premium: Optional[PremiumContext] = None,
    ) -> bool:
        """Run a full analysis synchronously. Returns True on success."""
        submission = self.begin(payload, premium)
        if submission is None:
            return False
        try:
            reply = self.model.generate(submission.outbound)
        except TransportError as exc:
            self.fail(submission, exc)
            return False
        return self.complete(submission, getattr(reply, "text", reply))

    # ------------------------------------------------------------------
    def _set_failed(self, exc: Exception) -> None:
        logger.error("Analysis failed (%s): %s", type(exc).__name__, exc)
        self.state = State.FAILED
        self.failure_kind = type(exc).__name__
        self.error_message = ANALYSIS_RETRY_MESSAGE

    # ------------------------------------------------------------------
    def _show(self, analysis: DischargeAnalysis, original_input: str) -> None:
        self.state = State.SUCCEEDED
        self.result = analysis
        self.current_slide = 0
        self.context = ChatContext(original_input=original_input, analysis=analysis)
        self.conversation = Conversation(self.context, self.model.start_chat)

    # ------------------------------------------------------------------
    def _save_history(self, original_input: str, analysis: DischargeAnalysis) -> None:
        if self._history is None:
            return
        try:
            self._history.append(original_input, analysis.to_json())
        except HistoryError as exc:
            logger.warning("Failed to save to history: %s", exc)

    # ── Slides ─────────────────────────────────────────────────────────────

    @property
    def slide_count(self) -> int:
        return len(self.result.slides) if self.result else 0

    def go_to_slide(self, index: int) -> int:
        if self.slide_count == 0:
            self.current_slide = 0
        else:
            self.current_slide = max(0, min(index, self.slide_count - 1))
        return self.current_slide

    def next_slide(self) -> int:
        return self.go_to_slide(self.current_slide + 1)

    def previous_slide(self) -> int:
        return self.go_to_slide(self.current_slide - 1)

    # ── History ────────────────────────────────────────────────────────────

    def load(self, record: HistoryRecord) -> None:
        """
        Show a past analysis with a fresh conversation, skipping SUBMITTING.
        Raises MalformedModelResponse if the stored JSON is corrupt.
        """
        analysis = record.analysis()
        self._generation += 1
        self.error_message = None
        self.failure_kind = None
        self._show(analysis, record.original_input)

    # ------------------------------------------------------------------
    def history_entries(self) -> List[HistoryRecord]:
        if self._history is None:
            return []
        try:
            return self._history.list()
        except HistoryError as exc:
            logger.warning("Failed to fetch history: %s", exc)
            return []

    # ------------------------------------------------------------------
    def delete_history(self, record_id: int) -> None:
        if self._history is None:
            return
        try:
            self._history.remove(record_id)
        except HistoryError as exc:
            logger.warning("Failed to delete history item: %s", exc)

    # ── Reset ──────────────────────────────────────────────────────────────

    def reset(self) -> None:
        """Back to IDLE: drop input, result, transcript and context; free the camera."""
        self._generation += 1
        self.selector.clear()
        self.state = State.IDLE
        self.result = None
        self.context = None
        self.conversation = None
        self.current_slide = 0
        self.error_message = None
        self.failure_kind = None
