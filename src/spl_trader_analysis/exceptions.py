"""
Errors surfaced to callers of the analysis pipeline.
"""


class ValidationError(ValueError):
    """A request field is missing or malformed."""


class SourceUnavailable(Exception):
    """The transaction source could not be reached or returned an error."""
