from .config import Settings, settings
from .exceptions import MasteryEngineError, PersistenceFailure, ConcurrencyConflict

__all__ = [
    "Settings",
    "settings",
    "MasteryEngineError",
    "PersistenceFailure",
    "ConcurrencyConflict",
]
