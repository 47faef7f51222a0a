from .mastery_state import MasteryStateRecord

__all__ = ["MasteryStateRecord"]
