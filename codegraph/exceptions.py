class CodeGraphError(Exception):
    """Base class for code graph pipeline errors."""


class MalformedRecordError(CodeGraphError):
    """A source record is missing required fields."""

    def __init__(self, message: str, source: str = ""):
        super().__init__(message)
        self.source = source


class ThrottlingError(CodeGraphError):
    """An upstream model rejected the call because of rate limiting."""


class ThrottlingExhaustedError(ThrottlingError):
    """Throttling retries hit the configured attempt bound."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class UpstreamFatalError(CodeGraphError):
    """An upstream model rejected the credentials or the permissions of the caller."""


class StructuralError(CodeGraphError):
    """The containment tree does not have the expected shape."""


class MultipleRootsError(StructuralError):
    """More than one scan root was found where exactly one is expected."""

    def __init__(self, roots):
        super().__init__(f"Expected exactly one scan root, found {len(roots)}: {', '.join(roots)}")
        self.roots = list(roots)


class UnknownEntityKindError(CodeGraphError, ValueError):
    """An entity kind outside Path/Class/Function was requested."""
