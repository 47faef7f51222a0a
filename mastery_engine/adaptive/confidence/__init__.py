from .wilson import wilson_interval, update_confidence_interval

__all__ = ["wilson_interval", "update_confidence_interval"]
