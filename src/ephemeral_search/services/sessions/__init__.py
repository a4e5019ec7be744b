from .orchestrator import SessionHandle, SessionOrchestrator
from .reaper import SessionReaper

__all__ = ["SessionHandle", "SessionOrchestrator", "SessionReaper"]
