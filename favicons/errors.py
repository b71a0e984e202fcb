"""Exception types raised inside the favicon pipeline."""


class FaviconError(Exception):
    """Base class for every pipeline failure."""


class InvalidInput(FaviconError):
    """The request itself is malformed: bad URL, bad query parameter."""


class BlockedAddress(InvalidInput):
    """The target host is on the private/loopback block list."""


class TransientFetchFailure(FaviconError):
    """A single remote call failed; the caller moves on to the next tier."""


class DeadlineExceeded(TransientFetchFailure):
    """The per-request deadline ran out before discovery finished."""


class NotFound(FaviconError):
    """Every ranked candidate was tried and none was acceptable."""

    def __init__(self, message, candidates=()):
        super().__init__(message)
        self.candidates = list(candidates)
