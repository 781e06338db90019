"""Rules binding expressions to target collections via temporal operators."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from tickflow.errors import RuleDefinitionError, SchemaMismatch, UnknownCollection
from tickflow.ops.expr import Expr
from tickflow.state.collection import Collection, Persistence


class TemporalOp(str, Enum):
    """How a rule's output reaches its target.

    MERGE_NOW (``<=``) joins the current tick's fixpoint. MERGE_NEXT (``<+``)
    and RETRACT_THEN_MERGE (``<+-``) are staged for the next tick. ASYNC
    (``<~``) pushes into a stream collection during the current tick.
    """

    MERGE_NOW = "merge_now"
    MERGE_NEXT = "merge_next"
    RETRACT_THEN_MERGE = "retract_then_merge"
    ASYNC = "async"

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]

    @property
    def fires_now(self) -> bool:
        return self in (TemporalOp.MERGE_NOW, TemporalOp.ASYNC)

    @staticmethod
    def parse(value: "TemporalOp | str") -> "TemporalOp":
        if isinstance(value, TemporalOp):
            return value
        text = str(value).strip()
        for op, symbol in _SYMBOLS.items():
            if text == symbol:
                return op
        try:
            return TemporalOp(text.lower())
        except ValueError:
            allowed = sorted(list(_SYMBOLS.values()) + [op.value for op in TemporalOp])
            raise RuleDefinitionError(f"Unknown temporal operator {value!r}; expected one of {allowed}.") from None


_SYMBOLS = {
    TemporalOp.MERGE_NOW: "<=",
    TemporalOp.MERGE_NEXT: "<+",
    TemporalOp.RETRACT_THEN_MERGE: "<+-",
    TemporalOp.ASYNC: "<~",
}


@dataclass(frozen=True)
class Rule:
    """A (target, temporal operator, expression) triple."""

    target: Collection
    op: TemporalOp
    expr: Expr
    name: Optional[str] = None
    validate_output: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.target, Collection):
            raise RuleDefinitionError("Rule target must be a Collection.")
        if not isinstance(self.expr, Expr):
            raise RuleDefinitionError("Rule expression must be an Expr.")
        object.__setattr__(self, "op", TemporalOp.parse(self.op))
        owner = self.target.owner
        for source in self.expr.sources:
            if source.owner is not owner:
                raise UnknownCollection(source.name, getattr(owner, "name", None))
            if not source.readable:
                raise RuleDefinitionError(
                    f"Rule {self.label}: stream collection '{source.name}' cannot be read."
                )
        is_stream = self.target.persistence is Persistence.STREAM
        if self.op is TemporalOp.ASYNC and not is_stream:
            raise RuleDefinitionError(
                f"Rule {self.label}: '<~' requires a stream target, got {self.target.persistence.value}."
            )
        if self.op is TemporalOp.RETRACT_THEN_MERGE and is_stream:
            raise RuleDefinitionError(f"Rule {self.label}: stream targets cannot retract rows.")
        if not self.op.fires_now and self.target.persistence is Persistence.SCRATCH:
            raise RuleDefinitionError(
                f"Rule {self.label}: scratch collection '{self.target.name}' is cleared every tick; "
                f"rows staged with '{self.op.symbol}' would never be visible."
            )
        output = self.expr.output
        if self.validate_output and output is not None and not output.compatible_with(self.target.schema):
            raise SchemaMismatch(
                f"Rule {self.label}: expression produces {output} but target "
                f"'{self.target.name}' expects {self.target.schema}."
            )

    @property
    def label(self) -> str:
        return self.name or f"{self.target.name} {self.op.symbol} {self.expr.describe().get('kind')}"

    @property
    def sources(self) -> tuple[Collection, ...]:
        return self.expr.sources

    @property
    def fires_now(self) -> bool:
        return self.op.fires_now

    @property
    def is_recursive(self) -> bool:
        return self.expr.reads(self.target)

    def evaluate(self) -> list[tuple]:
        return sorted(self.expr.results(), key=repr)

    def apply(self, produced: list[tuple]) -> int:
        """Hand already-evaluated output to the target; returns rows added now."""

        if self.op is TemporalOp.MERGE_NEXT:
            self.target.stage_merge(produced)
            return 0
        if self.op is TemporalOp.RETRACT_THEN_MERGE:
            self.target.stage_retract_then_merge(produced)
            return 0
        return self.target.merge_now(produced)

    def fire(self) -> int:
        return self.apply(self.evaluate())

    def describe(self) -> dict[str, object]:
        return {
            "name": self.name,
            "target": self.target.name,
            "op": self.op.symbol,
            "source": self.expr.describe(),
        }
