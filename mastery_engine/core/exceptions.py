"""
Engine error taxonomy

Only loading and persisting learner state can fail. The numerical steps
(classical update, forgetting, transfer, confidence) are pure and keep their
outputs inside [0, 1] by clamping instead of raising.
"""
from typing import Optional


class MasteryEngineError(Exception):
    """Base class for engine failures surfaced to callers"""

    retryable: bool = False


class PersistenceFailure(MasteryEngineError):
    """
    The state store could not be reached in time or returned a payload that
    does not decode. Nothing was written. Corrupt payloads are not retryable.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        learner_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.learner_id = learner_id
        self.tenant_id = tenant_id
        self.retryable = retryable


class ConcurrencyConflict(MasteryEngineError):
    """A conditional write found a different stored version than expected"""

    retryable = True

    def __init__(self, learner_id: str, tenant_id: str, expected_version: int, actual_version: Optional[int]):
        super().__init__(
            f"Version conflict for learner {learner_id} (tenant {tenant_id}): "
            f"expected {expected_version}, found {actual_version}"
        )
        self.learner_id = learner_id
        self.tenant_id = tenant_id
        self.expected_version = expected_version
        self.actual_version = actual_version
