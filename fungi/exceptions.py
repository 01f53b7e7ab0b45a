"""Custom exception hierarchy for fungi."""


class FungiError(Exception):
    """Base for all fungi errors."""


class MalformedProgram(FungiError):
    """Text could not be parsed as FUNGI code."""


class FeedUnavailable(FungiError):
    """The shared feed could not be reached or timed out."""


class EmptyRuleSystem(FungiError):
    """A rule system with no rules was about to be installed."""


class StorageExhausted(FungiError):
    """The local history could not be appended to. Fatal."""


class LifecycleError(FungiError):
    """Invalid lifecycle phase transition."""
