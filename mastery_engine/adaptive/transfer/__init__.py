"""
Transfer and prerequisite propagation between related skills
"""
from .propagation import TransferPropagator

__all__ = ["TransferPropagator"]
