"""Custom exceptions for the tickflow evaluation engine."""

from __future__ import annotations

from typing import Optional


class TickflowError(Exception):
    """Base exception for engine failures."""


class SchemaError(TickflowError):
    """Raised when a schema or program definition is invalid."""


class SchemaMismatch(SchemaError):
    """Raised when a row does not conform to a collection schema."""


class KeyConflict(SchemaError):
    """Raised when two different rows share a key in a keyed collection."""


class UnknownCollection(TickflowError):
    """Raised when a rule or call references an unregistered collection."""

    def __init__(self, name: str, program: Optional[str] = None) -> None:
        self.name = name
        self.program = program
        where = f" in program {program!r}" if program else ""
        super().__init__(f"Unknown collection: {name!r}{where}.")


class RuleDefinitionError(TickflowError):
    """Raised when a rule cannot be constructed."""


class ProgramSealed(TickflowError):
    """Raised when declarations are attempted after the first tick."""


class TickInProgress(TickflowError):
    """Raised when the host mutates state while a tick is evaluating."""


class UnsupportedOperation(TickflowError):
    """Raised when an operation is not valid for a persistence class."""


class NonTerminatingFixpoint(TickflowError):
    """Raised when the fixpoint loop exceeds the iteration cutoff."""

    def __init__(self, tick: int, iterations: int) -> None:
        self.tick = tick
        self.iterations = iterations
        super().__init__(
            f"Fixpoint did not converge in tick {tick} after {iterations} iterations."
        )


class ExternalIOFailure(TickflowError):
    """Raised when a durable store or sink collaborator fails."""

    def __init__(self, message: str, original: Optional[BaseException] = None) -> None:
        self.original = original
        super().__init__(message)


class DocumentError(SchemaError):
    """Raised when a program document fails validation."""
