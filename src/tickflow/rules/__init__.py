"""Rules and temporal operators."""

from tickflow.rules.rule import Rule, TemporalOp

__all__ = ["Rule", "TemporalOp"]
