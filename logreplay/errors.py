"""Exceptions raised by logreplay."""


class ReplayError(Exception):
    """Base class for replay errors."""


class MalformedEntry(ReplayError):
    """A recorded access could not be turned into an AccessEntry."""


class EmptyOrInvalidInput(ReplayError):
    """A timeline was requested from something that is not a validated entry."""
