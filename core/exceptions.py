"""Exceptions raised by the access policy engine and its stores."""


class AccessControlError(Exception):
    """Base class for access control errors."""


class InvalidAccessRequest(AccessControlError, ValueError):
    """
    The caller broke the request contract (missing resource type or
    action, malformed context). Raised before any evaluation happens so
    it is never confused with an ordinary deny.
    """


class SubjectNotFound(AccessControlError, LookupError):
    """The identity store has no active subject with the given id."""

    def __init__(self, subject_id):
        super().__init__(f"Subject {subject_id} not found")
        self.subject_id = subject_id
