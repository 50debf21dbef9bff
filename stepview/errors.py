class RenderError(Exception):
    """A render request failed as a whole; no partial output is produced."""


class SourceUnavailable(Exception):
    """The text of a source file could not be resolved for a span."""
