"""Closed set of step results and turn outcomes produced while walking the flow graph.

Step callbacks return ``Continue``, ``Fallback``, ``Jump`` or ``EndFlow`` (``None`` is
treated as ``Continue``). The engine reports every transition it takes as one of the
variants in ``Outcome``.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class Continue:
    next_step: Optional[int] = None


@dataclass(frozen=True)
class Fallback:
    message: Optional[str] = None


@dataclass(frozen=True)
class Jump:
    node_id: str


@dataclass(frozen=True)
class EndFlow:
    message: Optional[str] = None


@dataclass(frozen=True)
class AwaitingCapture:
    node_id: str
    step_index: int


@dataclass(frozen=True)
class Complete:
    node_id: Optional[str] = None


@dataclass(frozen=True)
class Failed:
    error: Exception


StepResult = Union[Continue, Fallback, Jump, EndFlow]
Outcome = Union[Continue, AwaitingCapture, Fallback, Jump, Complete, Failed]

STEP_RESULT_TYPES = (Continue, Fallback, Jump, EndFlow)
