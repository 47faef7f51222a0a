"""
Population-level prerequisite inference
"""
from .inference import PrerequisiteInferenceEngine, PrerequisiteInferenceJob

__all__ = ["PrerequisiteInferenceEngine", "PrerequisiteInferenceJob"]
