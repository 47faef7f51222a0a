from .bayesian_kt import BayesianKnowledgeTracer, posterior

__all__ = ["BayesianKnowledgeTracer", "posterior"]
