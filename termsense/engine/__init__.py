"""Classification engine: cwd extraction, activity and assistant state."""

from termsense.engine.buffer import AsyncioScheduler, ChunkBuffer, ManualScheduler
from termsense.engine.cwd import CwdExtractor
from termsense.engine.detector import AssistantDetector, StateChange
from termsense.engine.engine import SessionEngine

__all__ = [
    "AssistantDetector",
    "AsyncioScheduler",
    "ChunkBuffer",
    "CwdExtractor",
    "ManualScheduler",
    "SessionEngine",
    "StateChange",
]
