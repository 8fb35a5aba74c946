"""Correlation engine - call/response semantics over the session WebSocket.

Every send is correlated in two phases:

1. A local sequence slot is reserved before transmitting. The server answers
   each transmitted message with a `message_ack` carrying its permanent id, in
   send order, without echoing which send it belongs to. Each ack therefore
   resolves the OLDEST registered slot.
2. For an ask, the ack registers a pending question under the permanent id,
   bounded by the deadline fixed when the ask was sent. A `message_updated` for that id carrying a response
   resolves it; the response is decoded against the ask's answer model.

Every pending entry ends in exactly one of: resolved, timed out, failed by
session invalidation (close code 4001), or failed by shutdown. An ordinary
disconnect fails nothing: entries wait for the reconnect, bounded by their own
deadlines.

Acks sent across a reconnect are not guaranteed to arrive in order; there is
no recovery from that beyond the per-question deadline.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from .config import DEFAULT_ACK_TIMEOUT, SESSION_EXPIRED_CLOSE_CODE
from .errors import (
    ConnectionClosedError,
    JustackError,
    RequestTimeoutError,
    SessionExpiredError,
)
from .inputs import ConfirmInput, SelectInput, TextInput, decode_response
from .protocol import MessageAck, SendPayload
from .transport.websocket import ConnectionEvent, WebSocketConnection
from .types import Message

logger = logging.getLogger(__name__)


@dataclass
class QuestionSpec:
    """What an ask waits for once its permanent id is known."""

    inputs: tuple[TextInput | ConfirmInput | SelectInput, ...]
    response_model: type[BaseModel]
    timeout: float
    deadline: float  # Event loop time, fixed when the ask is sent


@dataclass
class PendingQuestion:
    """An ask waiting for a human response."""

    message_id: str
    spec: QuestionSpec
    future: asyncio.Future[Any]
    deadline: float  # Event loop time
    timer: asyncio.TimerHandle | None = None


@dataclass
class PendingAck:
    """A transmitted message waiting for its permanent id."""

    sequence: int
    future: asyncio.Future[str]
    question: QuestionSpec | None = None
    pending_question: PendingQuestion | None = field(default=None, repr=False)


class CorrelationEngine:
    """Matches sends to acks (FIFO) and asks to responses (by message id).

    The pending maps and the sequence counter belong to the engine; callers
    only observe counts.
    """

    def __init__(self, ack_timeout: float | None = DEFAULT_ACK_TIMEOUT) -> None:
        self.ack_timeout = ack_timeout
        self._pending_acks: OrderedDict[int, PendingAck] = OrderedDict()
        self._pending_questions: dict[str, PendingQuestion] = {}
        self._sequence = 0
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def pending_ack_count(self) -> int:
        return len(self._pending_acks)

    @property
    def pending_question_count(self) -> int:
        return len(self._pending_questions)

    def attach(self, connection: WebSocketConnection) -> None:
        """Listen to a connection's acks, updates and disconnects."""
        self.detach()
        self._unsubscribers = [
            connection.on(ConnectionEvent.MESSAGE_ACK, self.handle_ack),
            connection.on(ConnectionEvent.MESSAGE_UPDATED, self.handle_message_updated),
            connection.on(ConnectionEvent.DISCONNECTED, self.handle_disconnected),
        ]

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    # =========================================================================
    # Caller side
    # =========================================================================

    async def notify(self, connection: WebSocketConnection, payload: SendPayload) -> str:
        """Send a one-way message and return its permanent id once acked.

        The ack wait is bounded by `ack_timeout`.
        """
        slot = self._reserve()
        await self._transmit(connection, slot, payload)
        return await self._wait_for_ack(slot, self.ack_timeout)

    async def ask(
        self,
        connection: WebSocketConnection,
        payload: SendPayload,
        inputs: Sequence[TextInput | ConfirmInput | SelectInput],
        response_model: type[BaseModel],
        timeout: float,
    ) -> Any:
        """Send a question and wait for the decoded response.

        One deadline, started when the question is sent, bounds both the wait
        for the ack and the wait for the response. `ack_timeout` does not
        apply, so a reconnect in progress cannot fail the ask early.

        Returns:
            An instance of `response_model`, or the raw response text when the
            response does not match it

        Raises:
            RequestTimeoutError: No ack, or no response before the deadline
            SessionExpiredError: The server invalidated the session
            ConnectionClosedError: The engine was shut down
        """
        deadline = asyncio.get_running_loop().time() + timeout
        slot = self._reserve(QuestionSpec(tuple(inputs), response_model, timeout, deadline))
        await self._transmit(connection, slot, payload)
        remaining = max(0.0, deadline - asyncio.get_running_loop().time())
        await self._wait_for_ack(slot, remaining, f"Ask timed out after {timeout}s")

        pending = slot.pending_question
        if pending is None:
            raise RuntimeError(f"Ack for send #{slot.sequence} did not register a question")
        return await pending.future

    def _reserve(self, question: QuestionSpec | None = None) -> PendingAck:
        self._sequence += 1
        slot = PendingAck(
            sequence=self._sequence,
            future=asyncio.get_running_loop().create_future(),
            question=question,
        )
        self._pending_acks[slot.sequence] = slot
        return slot

    async def _transmit(
        self, connection: WebSocketConnection, slot: PendingAck, payload: SendPayload
    ) -> None:
        try:
            await connection.send(payload)
        except BaseException:
            # Nothing went out, so no ack will come for this slot
            self._pending_acks.pop(slot.sequence, None)
            if not slot.future.done():
                slot.future.cancel()
            raise

    async def _wait_for_ack(
        self, slot: PendingAck, timeout: float | None, message: str | None = None
    ) -> str:
        try:
            return await asyncio.wait_for(slot.future, timeout=timeout)
        except TimeoutError as e:
            # The slot stays registered (cancelled) so the late ack still
            # consumes it and later acks stay aligned
            raise RequestTimeoutError(
                message or f"No acknowledgment after {timeout}s for send #{slot.sequence}"
            ) from e

    # =========================================================================
    # Connection side
    # =========================================================================

    def handle_ack(self, ack: MessageAck) -> None:
        """Resolve the oldest pending send with its permanent id."""
        if not self._pending_acks:
            logger.debug(f"Ignoring ack {ack.id}: nothing pending")
            return

        _, slot = self._pending_acks.popitem(last=False)
        if slot.future.done():
            logger.debug(f"Discarding ack {ack.id} for abandoned send #{slot.sequence}")
            return

        if slot.question is not None:
            slot.pending_question = self._register_question(ack.id, slot.question)
        slot.future.set_result(ack.id)

    def handle_message_updated(self, message: Message) -> None:
        """Resolve the pending question a response belongs to."""
        if not message.is_answered:
            return

        pending = self._pending_questions.pop(message.id, None)
        if pending is None:
            # Not ours, or already timed out
            return

        self._cancel_timer(pending)
        if pending.future.done():
            return

        content = message.response_content or ""
        pending.future.set_result(decode_response(content, pending.spec.response_model))
        logger.debug(f"Resolved question {message.id}")

    def handle_disconnected(self, code: int | None = None, reason: str | None = None) -> None:
        """Fail everything when the server invalidates the session."""
        if code != SESSION_EXPIRED_CLOSE_CODE:
            return
        failed = self.fail_all(SessionExpiredError)
        logger.warning(f"Session expired ({reason or 'no reason'}), failed {failed} pending")

    def shutdown(self) -> int:
        """Stop listening and fail every outstanding operation.

        Returns:
            Number of operations failed
        """
        self.detach()
        return self.fail_all(ConnectionClosedError)

    def fail_all(self, error_type: type[JustackError], message: str | None = None) -> int:
        """Fail every pending ack and question and clear both maps."""
        slots = list(self._pending_acks.values())
        questions = list(self._pending_questions.values())
        self._pending_acks.clear()
        self._pending_questions.clear()

        failed = 0
        for slot in slots:
            if not slot.future.done():
                slot.future.set_exception(error_type(message))
                failed += 1
        for pending in questions:
            self._cancel_timer(pending)
            if not pending.future.done():
                pending.future.set_exception(error_type(message))
                failed += 1
        return failed

    # =========================================================================
    # Question bookkeeping
    # =========================================================================

    def _register_question(self, message_id: str, spec: QuestionSpec) -> PendingQuestion:
        loop = asyncio.get_running_loop()
        pending = PendingQuestion(
            message_id=message_id,
            spec=spec,
            future=loop.create_future(),
            deadline=spec.deadline,
        )
        remaining = max(0.0, spec.deadline - loop.time())
        pending.timer = loop.call_later(remaining, self._expire, pending)
        pending.future.add_done_callback(lambda _: self._discard(pending))
        self._pending_questions[message_id] = pending
        return pending

    def _expire(self, pending: PendingQuestion) -> None:
        pending.timer = None
        self._discard(pending)
        if not pending.future.done():
            logger.info(f"Question {pending.message_id} timed out after {pending.spec.timeout}s")
            pending.future.set_exception(
                RequestTimeoutError(f"Ask timed out after {pending.spec.timeout}s")
            )

    def _discard(self, pending: PendingQuestion) -> None:
        """Drop a question from the map and stop its timer."""
        if self._pending_questions.get(pending.message_id) is pending:
            del self._pending_questions[pending.message_id]
        self._cancel_timer(pending)

    @staticmethod
    def _cancel_timer(pending: PendingQuestion) -> None:
        if pending.timer is not None:
            pending.timer.cancel()
            pending.timer = None
