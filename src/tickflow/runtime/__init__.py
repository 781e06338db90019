"""Program and fixpoint scheduler."""

from tickflow.runtime.program import Program
from tickflow.runtime.scheduler import FixpointScheduler, TickPhase, TickReport

__all__ = ["FixpointScheduler", "Program", "TickPhase", "TickReport"]
