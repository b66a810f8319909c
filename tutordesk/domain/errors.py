"""
Error taxonomy for the subscription workflow.

- SubscriptionValidationError: local input problem, nothing was sent
- ScheduleConflictError: teacher already has a lesson in the requested slot
- BackendError: network / storage failure, the draft stays intact for a retry
- StaleSubscriptionError: the record being edited is gone
"""


class SubscriptionValidationError(ValueError):
    pass


class ScheduleConflictError(ValueError):
    def __init__(self, message: str, conflicting_sessions: list[dict] | None = None):
        super().__init__(message)
        self.message = message
        self.conflicting_sessions = conflicting_sessions or []


class BackendError(Exception):
    pass


class StaleSubscriptionError(BackendError):
    pass
