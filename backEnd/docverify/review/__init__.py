"""Review gate: turns verification state into a proceed / review decision."""

from .gate import GateDecision, evaluate_gate

__all__ = ["GateDecision", "evaluate_gate"]
