"""Dialogue graph: nodes, steps and the validated, immutable registry built at startup."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional

from flowbot.logging_config import get_logger

logger = get_logger("flow_graph")


class TriggerKind(str, Enum):
    KEYWORD = "keyword"
    EVENT = "event"


class ConfigError(Exception):
    """Invalid graph definition. Raised while building the graph, fatal at startup."""


class DuplicateTriggerError(ConfigError):
    def __init__(self, kind: TriggerKind, value: str, existing: str, duplicate: str):
        self.kind = kind
        self.value = value
        self.existing = existing
        self.duplicate = duplicate
        super().__init__(f"Duplicate {kind.value} '{value}': already registered by '{existing}', got '{duplicate}'")


class UnknownNodeError(ConfigError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Unknown node: {node_id}")


class InvalidNodeError(ConfigError):
    pass


def normalize_keyword(value: str) -> str:
    return (value or "").strip().casefold()


@dataclass(frozen=True)
class Step:
    """One agent output plus optional capture.

    A step without ``message``/``media`` but with a ``callback`` is an action: it runs
    immediately and may emit messages through ``ctx.send``.
    """

    message: Optional[str] = None
    media: Optional[str] = None
    capture: bool = False
    callback: Optional[Callable[..., Any]] = None
    delay_ms: int = 0

    @property
    def has_output(self) -> bool:
        return bool(self.message or self.media)


def answer(message=None, *, media=None, capture=False, callback=None, delay_ms=0) -> Step:
    """Build a step; ``message`` may be a list of lines."""
    if isinstance(message, (list, tuple)):
        message = "\n".join(message)
    return Step(message=message, media=media, capture=capture, callback=callback, delay_ms=delay_ms)


def action(callback: Callable[..., Any]) -> Step:
    return Step(callback=callback)


@dataclass(frozen=True)
class Node:
    node_id: str
    steps: tuple[Step, ...]
    keywords: tuple[str, ...] = ()
    events: tuple[str, ...] = ()
    branches: tuple[str, ...] = ()
    internal: bool = False

    def step_ref(self, index: int) -> str:
        return f"{self.node_id}:{index}"

    @property
    def last_index(self) -> int:
        return len(self.steps) - 1


@dataclass(frozen=True)
class FlowGraph:
    """Immutable, validated registry of nodes and trigger indexes."""

    nodes: Mapping[str, Node]
    keyword_index: Mapping[str, str]
    event_index: Mapping[str, str]
    branch_index: Mapping[str, Mapping[str, str]] = field(default_factory=dict)

    def node(self, node_id: str) -> Node:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise UnknownNodeError(node_id) from None

    def has_node(self, node_id: str) -> bool:
        return node_id in self.nodes

    def resolve_keyword(self, text: str) -> Optional[str]:
        return self.keyword_index.get(normalize_keyword(text))

    def resolve_event(self, name: str) -> Optional[str]:
        return self.event_index.get(name)

    def resolve_trigger(self, keyword_or_event: str) -> Optional[str]:
        """Exact, case-insensitive keyword match, then exact event-name match."""
        return self.resolve_keyword(keyword_or_event) or self.resolve_event(keyword_or_event)

    def resolve_branch(self, node_id: str, text: str) -> Optional[str]:
        return self.branch_index.get(node_id, {}).get(normalize_keyword(text))


class FlowGraphBuilder:
    """Explicit construction phase. ``build()`` validates and freezes the graph."""

    def __init__(self):
        self._nodes: dict[str, Node] = {}
        self._keyword_index: dict[str, str] = {}
        self._event_index: dict[str, str] = {}

    def add_node(
        self,
        node_id: str,
        steps: Iterable[Step],
        *,
        keywords: Iterable[str] = (),
        events: Iterable[str] = (),
        branches: Iterable[str] = (),
        internal: bool = False,
    ) -> str:
        if node_id in self._nodes:
            raise InvalidNodeError(f"Node '{node_id}' is already registered")

        node = Node(
            node_id=node_id,
            steps=tuple(steps),
            keywords=tuple(normalize_keyword(k) for k in keywords),
            events=tuple(events),
            branches=tuple(branches),
            internal=internal,
        )
        self._check_node(node)

        if not node.internal:
            for keyword in node.keywords:
                if keyword in self._keyword_index:
                    raise DuplicateTriggerError(TriggerKind.KEYWORD, keyword, self._keyword_index[keyword], node_id)
            for event in node.events:
                if event in self._event_index:
                    raise DuplicateTriggerError(TriggerKind.EVENT, event, self._event_index[event], node_id)
            if len(set(node.keywords)) != len(node.keywords) or len(set(node.events)) != len(node.events):
                raise InvalidNodeError(f"Node '{node_id}' lists the same trigger twice")
            self._keyword_index.update({keyword: node_id for keyword in node.keywords})
            self._event_index.update({event: node_id for event in node.events})

        self._nodes[node_id] = node
        return node_id

    @staticmethod
    def _check_node(node: Node) -> None:
        if not node.steps:
            raise InvalidNodeError(f"Node '{node.node_id}' has no steps")
        if any(not k for k in node.keywords):
            raise InvalidNodeError(f"Node '{node.node_id}' has an empty keyword")
        if node.internal and node.events:
            raise InvalidNodeError(f"Internal node '{node.node_id}' cannot be triggered by events")
        if not node.internal and not (node.keywords or node.events):
            raise InvalidNodeError(f"Node '{node.node_id}' has no trigger and is not internal")
        for index, step in enumerate(node.steps):
            if not step.has_output and step.callback is None:
                raise InvalidNodeError(f"Step {node.step_ref(index)} has neither output nor callback")
            if step.capture and not step.has_output:
                raise InvalidNodeError(f"Capture step {node.step_ref(index)} has no prompt")
        if node.branches and not node.steps[-1].capture:
            raise InvalidNodeError(f"Node '{node.node_id}' has branches but its last step does not capture")

    def build(self) -> FlowGraph:
        branch_index: dict[str, Mapping[str, str]] = {}

        for node in self._nodes.values():
            if not node.branches:
                continue
            targets: dict[str, str] = {}
            for target_id in node.branches:
                target = self._nodes.get(target_id)
                if target is None:
                    raise UnknownNodeError(target_id)
                for keyword in target.keywords:
                    if keyword in targets and targets[keyword] != target_id:
                        raise DuplicateTriggerError(TriggerKind.KEYWORD, keyword, targets[keyword], target_id)
                    targets[keyword] = target_id
            branch_index[node.node_id] = MappingProxyType(targets)

        logger.info(
            f"Flow graph built: {len(self._nodes)} nodes, "
            f"{len(self._keyword_index)} keywords, {len(self._event_index)} events"
        )
        return FlowGraph(
            nodes=MappingProxyType(dict(self._nodes)),
            keyword_index=MappingProxyType(dict(self._keyword_index)),
            event_index=MappingProxyType(dict(self._event_index)),
            branch_index=MappingProxyType(branch_index),
        )
