"""Flow engine: walks the dialogue graph for one conversation turn.

The engine performs no I/O. A turn starts either at a node entry (keyword or event
match) or at the conversation's resume point (a pending capture), runs steps until it
suspends on a capture or the flow ends, and returns the outbound messages together with
the outcome. State changes made by callbacks are applied to a working copy and only
committed when the turn does not fail, so a failed turn can be replayed as-is.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from flowbot.logging_config import ConversationLogger, get_logger
from flowbot.services.conversation_state import ConversationStore, ResumePoint
from flowbot.services.flow_graph import FlowGraph, Node, Step, UnknownNodeError
from flowbot.services.flow_outcomes import (
    STEP_RESULT_TYPES,
    AwaitingCapture,
    Complete,
    Continue,
    EndFlow,
    Failed,
    Fallback,
    Jump,
    Outcome,
)

logger = get_logger("flow_engine")


class EngineError(Exception):
    def __init__(self, message: str, node_id: Optional[str] = None, step_index: Optional[int] = None):
        self.node_id = node_id
        self.step_index = step_index
        super().__init__(message)


@dataclass(frozen=True)
class InboundMessage:
    from_: str
    body: str = ""
    name: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OutboundMessage:
    to: str
    text: Optional[str] = None
    media: Optional[str] = None
    ref: Optional[str] = None
    keyword: Optional[str] = None
    capture: bool = False
    delay_ms: int = 0


@dataclass(frozen=True)
class CapturedAnswer:
    """Reply consumed by a capture step, kept for the history log."""

    ref: str
    keyword: Optional[str]
    body: str


@dataclass
class Turn:
    conversation_id: str
    outcome: Outcome
    effects: list[OutboundMessage] = field(default_factory=list)
    trace: list[Outcome] = field(default_factory=list)
    captured: Optional[CapturedAnswer] = None

    @property
    def failed(self) -> bool:
        return isinstance(self.outcome, Failed)


class StateView:
    """Callback-facing accessor over the turn's working copy of the state map."""

    def __init__(self, values: dict[str, Any]):
        self._values = values

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def update(self, values: dict[str, Any]) -> None:
        self._values.update(values)

    def clear(self) -> None:
        self._values.clear()

    def as_dict(self) -> dict[str, Any]:
        return dict(self._values)


class StepContext:
    def __init__(self, run: "_TurnRun", node: Node, step_index: int):
        self._run = run
        self._ref = node.step_ref(step_index)
        self.body = run.message.body
        self.from_ = run.message.from_
        self.name = run.message.name
        self.payload = run.message.payload
        self.state = StateView(run.state)

    def send(self, text: Optional[str] = None, media: Optional[str] = None) -> None:
        """Queue an extra outbound message for this turn."""
        self._run.emit(text=text, media=media, ref=self._ref)


class _TurnRun:
    """Mutable bookkeeping for a single turn; discarded after commit."""

    def __init__(self, conversation_id: str, message: InboundMessage, state: dict[str, Any], keyword: Optional[str]):
        self.conversation_id = conversation_id
        self.message = message
        self.state = state
        self.keyword = keyword
        self.effects: list[OutboundMessage] = []
        self.trace: list[Outcome] = []
        self.captured: Optional[CapturedAnswer] = None
        self.resume: Optional[ResumePoint] = None
        self.jumps = 0

    def emit(self, text=None, media=None, ref=None, capture=False, delay_ms=0) -> None:
        if not text and not media:
            return
        self.effects.append(
            OutboundMessage(
                to=self.conversation_id,
                text=text,
                media=media,
                ref=ref,
                keyword=self.keyword,
                capture=capture,
                delay_ms=delay_ms,
            )
        )


class FlowEngine:
    def __init__(
        self,
        graph: FlowGraph,
        conversations: ConversationStore,
        max_fallbacks: int = 0,
        max_jumps: int = 10,
    ):
        self.graph = graph
        self.conversations = conversations
        self.max_fallbacks = max_fallbacks
        self.max_jumps = max_jumps

    def resolve_trigger(self, keyword_or_event: str) -> Optional[str]:
        return self.graph.resolve_trigger(keyword_or_event)

    def start(self, conversation_id: str, node_id: str, message: InboundMessage, keyword: Optional[str] = None) -> Turn:
        """Enter ``node_id`` at step 0, replacing any pending resume point."""
        run = self._new_run(conversation_id, message, keyword)
        try:
            self._run_steps(run, self._node(node_id), 0)
        except EngineError as e:
            return self._fail(run, e)
        return self._commit(run)

    def advance(self, conversation_id: str, message: InboundMessage) -> Turn:
        """Feed an inbound reply to the conversation's pending capture step."""
        resume = self.conversations.get_resume(conversation_id)
        if resume is None:
            return Turn(conversation_id=conversation_id, outcome=Complete(), trace=[Complete()])

        run = self._new_run(conversation_id, message, resume.keyword)
        try:
            self._resume(run, resume)
        except EngineError as e:
            return self._fail(run, e)
        return self._commit(run)

    def _new_run(self, conversation_id: str, message: InboundMessage, keyword: Optional[str]) -> _TurnRun:
        self.conversations.touch(conversation_id)
        return _TurnRun(conversation_id, message, self.conversations.snapshot(conversation_id), keyword)

    def _node(self, node_id: str) -> Node:
        try:
            return self.graph.node(node_id)
        except UnknownNodeError:
            raise EngineError(f"Jump to unknown node '{node_id}'", node_id=node_id) from None

    def _call(self, run: _TurnRun, node: Node, index: int, step: Step):
        ctx = StepContext(run, node, index)
        try:
            result = step.callback(ctx)
        except Exception as e:
            raise EngineError(f"Callback failed at {node.step_ref(index)}: {e}", node.node_id, index) from e
        if result is None:
            return Continue()
        if not isinstance(result, STEP_RESULT_TYPES):
            raise EngineError(
                f"Callback at {node.step_ref(index)} returned unsupported result {result!r}", node.node_id, index
            )
        return result

    def _resume(self, run: _TurnRun, resume: ResumePoint) -> None:
        node = self._node(resume.node_id)
        if resume.step_index >= len(node.steps):
            raise EngineError(f"Resume point {node.step_ref(resume.step_index)} is out of range", node.node_id)
        index = resume.step_index
        step = node.steps[index]

        result = self._call(run, node, index, step) if step.callback else Continue()
        run.captured = CapturedAnswer(ref=node.step_ref(index), keyword=run.keyword, body=run.message.body)

        if isinstance(result, Fallback):
            self._fallback(run, node, index, resume, result)
            return
        if isinstance(result, Jump):
            self._jump(run, result)
            return
        if isinstance(result, EndFlow):
            self._end(run, node, result)
            return

        if index == node.last_index and node.branches:
            target = self.graph.resolve_branch(node.node_id, run.message.body)
            if target is not None:
                self._jump(run, Jump(target))
                return

        run.trace.append(Continue(next_step=index + 1))
        self._run_steps(run, node, index + 1)

    def _fallback(self, run: _TurnRun, node: Node, index: int, resume: ResumePoint, result: Fallback) -> None:
        run.trace.append(result)
        if self.max_fallbacks and resume.fallbacks + 1 > self.max_fallbacks:
            logger.info(
                f"Fallback limit reached at {node.step_ref(index)}, ending flow",
                extra={"context": {"conversation_id": run.conversation_id, "fallbacks": resume.fallbacks}},
            )
            run.resume = None
            run.trace.append(Complete(node.node_id))
            return

        step = node.steps[index]
        run.emit(text=result.message, ref=node.step_ref(index))
        run.emit(text=step.message, media=step.media, ref=node.step_ref(index), capture=True, delay_ms=step.delay_ms)
        run.resume = resume.with_fallback()

    def _end(self, run: _TurnRun, node: Node, result: EndFlow) -> None:
        run.emit(text=result.message, ref=node.node_id)
        run.resume = None
        run.trace.append(Complete(node.node_id))

    def _jump(self, run: _TurnRun, jump: Jump) -> None:
        """Reset to (target, 0) and keep executing within the same turn."""
        run.trace.append(jump)
        run.jumps += 1
        if run.jumps > self.max_jumps:
            raise EngineError(f"Jump limit of {self.max_jumps} exceeded entering '{jump.node_id}'", jump.node_id)
        self._run_steps(run, self._node(jump.node_id), 0)

    def _run_steps(self, run: _TurnRun, node: Node, start: int) -> None:
        for index in range(start, len(node.steps)):
            step = node.steps[index]
            ref = node.step_ref(index)
            run.emit(text=step.message, media=step.media, ref=ref, capture=step.capture, delay_ms=step.delay_ms)

            if step.capture:
                run.resume = ResumePoint(node_id=node.node_id, step_index=index, keyword=run.keyword)
                run.trace.append(AwaitingCapture(node.node_id, index))
                return

            if step.callback:
                result = self._call(run, node, index, step)
                if isinstance(result, Fallback):
                    raise EngineError(f"Fallback requested by non-capture step {ref}", node.node_id, index)
                if isinstance(result, Jump):
                    self._jump(run, result)
                    return
                if isinstance(result, EndFlow):
                    self._end(run, node, result)
                    return

            if index < node.last_index:
                run.trace.append(Continue(next_step=index + 1))

        run.resume = None
        run.trace.append(Complete(node.node_id))

    def _commit(self, run: _TurnRun) -> Turn:
        cid = run.conversation_id
        self.conversations.replace(cid, run.state)
        if run.resume is None:
            self.conversations.clear_resume(cid)
        else:
            self.conversations.set_resume(cid, run.resume)
        return Turn(
            conversation_id=cid,
            outcome=run.trace[-1] if run.trace else Complete(),
            effects=run.effects,
            trace=run.trace,
            captured=run.captured,
        )

    def _fail(self, run: _TurnRun, error: EngineError) -> Turn:
        log = ConversationLogger(logger, run.conversation_id)
        log.error(
            f"Turn aborted: {error}",
            context={"node_id": error.node_id, "step_index": error.step_index},
            exc_info=error,
        )
        failed = Failed(error)
        run.trace.append(failed)
        return Turn(conversation_id=run.conversation_id, outcome=failed, effects=run.effects, trace=run.trace)
