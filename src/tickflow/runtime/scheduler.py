"""Per-tick fixpoint evaluation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Optional, Sequence

from tickflow.errors import NonTerminatingFixpoint
from tickflow.ir.row import Row, row_values
from tickflow.rules.rule import Rule
from tickflow.state.collection import Collection, CollectionDelta


logger = logging.getLogger(__name__)


class TickPhase(str, Enum):
    TICK_START = "tick_start"
    EVALUATING = "evaluating"
    QUIESCENT = "quiescent"
    TICK_END = "tick_end"


@dataclass(frozen=True)
class TickReport:
    """Outcome of one tick.

    Attributes:
        tick: Index of the tick, starting at 0.
        iterations: Fixpoint passes run, including the final quiescent pass.
        changed: Per-collection delta against the end of the previous tick.
        sizes: Row counts of readable collections at tick end.
        emitted: Rows forwarded to stream sinks during the tick.
    """

    tick: int
    iterations: int
    changed: dict[str, CollectionDelta] = field(default_factory=dict)
    sizes: dict[str, int] = field(default_factory=dict)
    emitted: int = 0

    @property
    def changed_names(self) -> list[str]:
        return sorted(self.changed)

    @property
    def quiet(self) -> bool:
        """True when no readable collection changed during the tick."""

        return not self.changed

    def to_dict(self) -> dict[str, object]:
        return {
            "tick": self.tick,
            "iterations": self.iterations,
            "changed": {
                name: {
                    "added": sorted(row_values(row) for row in delta.added),
                    "removed": sorted(row_values(row) for row in delta.removed),
                }
                for name, delta in sorted(self.changed.items())
            },
            "sizes": dict(sorted(self.sizes.items())),
            "emitted": self.emitted,
        }


class FixpointScheduler:
    """Runs merge-now rules to quiescence and stages next-tick rules.

    Every pass evaluates all rules against the content present when the pass
    starts and only then applies the results, so rule order within a pass
    cannot change the outcome.
    """

    def __init__(
        self,
        collections: Sequence[Collection],
        rules: Sequence[Rule],
        max_iterations: Optional[int] = None,
    ) -> None:
        self.collections = list(collections)
        self.rules = list(rules)
        self.max_iterations = max_iterations
        self.phase = TickPhase.TICK_END
        self._now_rules = [rule for rule in self.rules if rule.fires_now]
        self._staged_rules = [rule for rule in self.rules if not rule.fires_now]
        self._readable = [c for c in self.collections if c.readable]
        self._last: dict[str, frozenset[Row]] = {}
        strata = self.strata()
        for rule in strata["recursive"]:
            logger.debug("Rule %s participates in recursive fixpoint", rule.label)

    def snapshot(self) -> dict[str, frozenset[Row]]:
        return {c.name: c.contents() for c in self._readable}

    def strata(self) -> dict[str, list[Rule]]:
        """Split merge-now rules by whether they sit on a merge-now cycle."""

        edges: dict[str, set[str]] = {}
        for rule in self._now_rules:
            for source in rule.sources:
                edges.setdefault(source.name, set()).add(rule.target.name)

        def reaches(start: str, goals: set[str]) -> bool:
            stack = [start]
            seen: set[str] = set()
            while stack:
                node = stack.pop()
                if node in goals:
                    return True
                if node in seen:
                    continue
                seen.add(node)
                stack.extend(edges.get(node, ()))
            return False

        recursive: list[Rule] = []
        flat: list[Rule] = []
        for rule in self._now_rules:
            goals = {source.name for source in rule.sources}
            if rule.is_recursive or reaches(rule.target.name, goals):
                recursive.append(rule)
            else:
                flat.append(rule)
        return {"recursive": recursive, "non_recursive": flat}

    def run_tick(self, tick: int) -> TickReport:
        self.phase = TickPhase.TICK_START
        for collection in self.collections:
            collection.advance_tick()

        self.phase = TickPhase.EVALUATING
        iterations = 0
        while True:
            iterations += 1
            added = self._pass()
            logger.debug("tick %d pass %d added %d rows", tick, iterations, added)
            if not added:
                break
            if self.max_iterations is not None and iterations >= self.max_iterations:
                self.phase = TickPhase.TICK_END
                raise NonTerminatingFixpoint(tick, iterations)
        self.phase = TickPhase.QUIESCENT

        current = self.snapshot()
        changed: dict[str, CollectionDelta] = {}
        for name, rows in current.items():
            delta = CollectionDelta.between(self._last.get(name, frozenset()), rows)
            if delta:
                changed[name] = delta
        self._last = current
        emitted = sum(getattr(c, "emitted_this_tick", 0) for c in self.collections)
        self.phase = TickPhase.TICK_END
        return TickReport(
            tick=tick,
            iterations=iterations,
            changed=changed,
            sizes={name: len(rows) for name, rows in current.items()},
            emitted=emitted,
        )

    def _pass(self) -> int:
        produced = [(rule, rule.evaluate()) for rule in self._now_rules]
        staged = [(rule, rule.evaluate()) for rule in self._staged_rules]
        added = 0
        for rule, rows in produced:
            added += rule.apply(rows)
        for rule, rows in staged:
            rule.apply(rows)
        return added
