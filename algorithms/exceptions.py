# algorithms/exceptions.py
"""
Error taxonomy for the matching and notification engine.

Validation, dependency, aggregate and conflict errors propagate to the
caller. Partial dispatch failures are not exceptions: they travel back in
the dispatch result and show up in the logs.
"""


class MatchingError(Exception):
    """Base class for every error the engine raises on purpose"""

    def __init__(self, message, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self):
        return self.message


class ValidationError(MatchingError, ValueError):
    """Bad input: unknown blood type, invalid coordinates, illegal status"""


class DependencyError(MatchingError):
    """The data store or the transport could not be reached"""


class AggregateFailure(MatchingError):
    """
    Not a single notification could be created for a dispatch batch.

    Usually means something systemic (schema mismatch, store down) rather
    than a problem with one donor.
    """

    def __init__(self, message, failures=None, **context):
        super().__init__(message, **context)
        self.failures = list(failures or [])


class ConflictError(MatchingError):
    """The request or the donor's answer is already final"""


class NoCandidatesError(MatchingError):
    """Matching found nobody compatible and eligible for the request"""
