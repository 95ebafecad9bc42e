"""Error taxonomy for contract parsing and diffing."""

from typing import Optional


class SollensError(Exception):
    """Base class for all sollens errors."""
    pass


class ParseError(SollensError):
    """Raised when source text cannot be parsed into a contract model at all."""

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column


class CollaboratorFailure(SollensError):
    """Semantic analysis failed: timeout, missing credentials or unusable response."""
    pass


class MalformedModelError(SollensError):
    """An entity refers to a name that is absent from its own model's lookup."""
    pass
