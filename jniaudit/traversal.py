"""
jniaudit/traversal.py
═════════════════════

The interprocedural walk shared by all four boundary analyses.

Starting at a boundary-entry function, the engine scans every instruction
of every function reachable through resolved, non-runtime calls and stops
at the first piece of evidence.  What counts as evidence is supplied by a
:class:`BoundaryPredicate`:

  function_test(fn)          applied once when a function is entered,
                             whether or not it has a body
  instruction_test(fn, i)    applied to every instruction in order
  boundary_policy(fn, call)  applied to calls into the Java runtime,
                             which are never descended into

Each hook returns ``None`` for "no evidence" or a short reason string.

Walk
────
The walk is an explicit-stack depth-first search, so call chains of any
depth never touch the Python recursion limit.

* Unresolved calls (function pointers, calls to eliminated functions) are
  skipped.  Functions without a body contribute only ``function_test``.
* A function is put on the *path* when the engine descends into it and
  taken off when its frame is exhausted, so the same function is visited
  again on a disjoint path.
* A call to a function that is already on the path closes a cycle.  Under
  :attr:`CyclePolicy.NO_EVIDENCE` the call is skipped: the function on
  the path is being scanned by its own frame, so whatever it holds is
  still found.  Under :attr:`CyclePolicy.CONSERVATIVE` the cycle itself is
  reported.
* A callee whose whole subtree finished without evidence, and without
  leaning on a frame below it through a cycle, is remembered as clean for
  the rest of the run.  The memo belongs to the run; nothing survives
  between runs.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from typing import (
    Iterable,
    List,
    Optional,
    Protocol,
    Set,
    Tuple,
    runtime_checkable,
)

from jniaudit.classify import is_boundary_call
from jniaudit.config import CyclePolicy
from jniaudit.errors import MalformedIRError
from jniaudit.ir import Function, Instruction
from jniaudit.runtime_table import BOUNDARY_SIGNATURES

logger = logging.getLogger(__name__)

CYCLE_REASON = "call cycle"


@runtime_checkable
class BoundaryPredicate(Protocol):
    """What one analysis considers evidence."""

    name: str

    def function_test(self, function: Function) -> Optional[str]:
        ...

    def instruction_test(
        self, function: Function, inst: Instruction
    ) -> Optional[str]:
        ...

    def boundary_policy(
        self, function: Function, call: Instruction
    ) -> Optional[str]:
        ...


@dataclass(frozen=True)
class TraversalResult:
    """Outcome of one traversal.

    ``path`` runs from the entry function to the function holding the
    evidence; ``instruction`` is ``None`` when the evidence is a property
    of the function itself (e.g. a missing ``readonly`` attribute).
    """
    positive: bool
    reason: str = ""
    path: Tuple[str, ...] = ()
    instruction: Optional[Instruction] = field(default=None, compare=False)
    visited: int = field(default=0, compare=False)

    @property
    def culprit(self) -> Optional[str]:
        return self.path[-1] if self.path else None

    def describe(self) -> str:
        if not self.positive:
            return "no evidence"
        where = " -> ".join(self.path)
        if self.instruction is not None:
            return f"{self.reason} in {where}: {self.instruction}"
        return f"{self.reason} in {where}"


@dataclass
class _Frame:
    function: Function
    depth: int
    position: int = 0
    # shallowest path depth reached by a cycle from inside this subtree
    low: int = sys.maxsize


class TraversalEngine:
    """Runs a :class:`BoundaryPredicate` over a call graph.

    The engine holds configuration only; every :meth:`analyze` call owns
    its own path, memo and history.
    """

    def __init__(
        self,
        predicate: BoundaryPredicate,
        cycle_policy: CyclePolicy = CyclePolicy.NO_EVIDENCE,
        boundary_signatures: Iterable[str] = BOUNDARY_SIGNATURES,
    ) -> None:
        self.predicate = predicate
        self.cycle_policy = cycle_policy
        self.boundary_signatures = tuple(boundary_signatures)

    def analyze(
        self,
        entry: Function,
        history: Optional[Set[str]] = None,
    ) -> TraversalResult:
        """Search everything reachable from *entry* for evidence.

        *history*, if given, receives the name of every function the walk
        entered.
        """
        if history is None:
            history = set()
        clean: Set[str] = set()
        stack: List[_Frame] = []
        on_path: dict = {}
        visited = 0

        def positive(reason: str, inst: Optional[Instruction],
                     extra: Tuple[str, ...] = ()) -> TraversalResult:
            path = tuple(f.function.name for f in stack) + extra
            logger.debug("%s: %s via %s", self.predicate.name, reason,
                         " -> ".join(path))
            return TraversalResult(True, reason, path, inst, visited)

        history.add(entry.name)
        visited += 1
        reason = self._guard(entry, self.predicate.function_test, entry)
        if reason:
            return positive(reason, None, (entry.name,))
        if not entry.is_definition:
            return TraversalResult(False, visited=visited)
        stack.append(_Frame(entry, 0))
        on_path[entry.name] = 0

        while stack:
            frame = stack[-1]
            fn = frame.function

            if frame.position >= len(fn.instructions):
                stack.pop()
                del on_path[fn.name]
                if frame.low >= frame.depth:
                    clean.add(fn.name)
                if stack:
                    stack[-1].low = min(stack[-1].low, frame.low)
                continue

            inst = fn.instructions[frame.position]
            frame.position += 1

            reason = self._guard(fn, self.predicate.instruction_test, fn, inst)
            if reason:
                return positive(reason, inst)
            if not inst.is_call:
                continue

            if self._guard(fn, is_boundary_call, inst, self.boundary_signatures):
                reason = self._guard(
                    fn, self.predicate.boundary_policy, fn, inst)
                if reason:
                    return positive(reason, inst)
                continue

            callee = inst.callee
            if callee is None:
                continue
            if callee.name in on_path:
                frame.low = min(frame.low, on_path[callee.name])
                logger.debug("%s: cycle %s -> %s", self.predicate.name,
                             fn.name, callee.name)
                if self.cycle_policy is CyclePolicy.CONSERVATIVE:
                    return positive(CYCLE_REASON, inst, (callee.name,))
                continue
            if callee.name in clean:
                continue

            history.add(callee.name)
            visited += 1
            reason = self._guard(callee, self.predicate.function_test, callee)
            if reason:
                return positive(reason, inst, (callee.name,))
            if not callee.is_definition:
                clean.add(callee.name)
                continue
            depth = len(stack)
            logger.debug("%s: %s -> %s (depth %d)", self.predicate.name,
                         fn.name, callee.name, depth)
            stack.append(_Frame(callee, depth))
            on_path[callee.name] = depth

        return TraversalResult(False, visited=visited)

    @staticmethod
    def _guard(owner: Function, fn, *args):
        """Call *fn*, attributing a :class:`MalformedIRError` to *owner*."""
        try:
            return fn(*args)
        except MalformedIRError as exc:
            if exc.function is None:
                exc.function = owner.name
            raise


def analyze(
    function: Function,
    predicate: BoundaryPredicate,
    history: Optional[Set[str]] = None,
    cycle_policy: CyclePolicy = CyclePolicy.NO_EVIDENCE,
) -> TraversalResult:
    """Convenience wrapper: one traversal with a throw-away engine."""
    engine = TraversalEngine(predicate, cycle_policy=cycle_policy)
    return engine.analyze(function, history)


__all__ = [
    "BoundaryPredicate",
    "TraversalEngine",
    "TraversalResult",
    "CYCLE_REASON",
    "analyze",
]
