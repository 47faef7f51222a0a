"""
Mastery Engine

Per-learner knowledge tracing for early-literacy skills.
"""
__version__ = "1.0.0"
