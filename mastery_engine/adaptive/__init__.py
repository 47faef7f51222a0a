"""
Adaptive learning algorithms: knowledge tracing, forgetting, transfer,
confidence and prerequisite inference
"""
