"""
adscope Failure Taxonomy
========================

Every failure raised or recorded by the collector is scoped to the
smallest unit that produced it:

- TransportFailure: a page request failed; ends that query only
- UnsupportedServer: the paged-results control is missing; ends that query
- LookupFailed: an extended-right GUID could not be resolved
- ParseFailure: a config file or record could not be parsed
- EnumerationFailure: a directory could not be listed
- PolicyReadError: a security template could not be read

None of these is fatal to a run. Loops record them in an Outcome and
move on to the next item.
"""

from dataclasses import dataclass
from typing import Optional


class AdscopeError(Exception):
    """Base class for all collector failures."""


class TransportFailure(AdscopeError):
    """A directory request could not be sent or answered."""


class UnsupportedServer(AdscopeError):
    """The directory did not acknowledge the paged-results control."""


class LookupFailed(AdscopeError):
    """An extended-right GUID has no unique registration."""

    def __init__(self, guid: str, reason: str = ""):
        self.guid = guid
        self.reason = reason
        message = f"Cannot resolve extended right {guid}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ParseFailure(AdscopeError):
    """A file or record is not valid structured markup."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        super().__init__(f"Error loading file {path}: {reason}" if reason else f"Error loading file {path}")


class EnumerationFailure(AdscopeError):
    """A directory in the file tree could not be listed."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot list {path}: {reason}" if reason else f"Cannot list {path}")


class PolicyReadError(AdscopeError):
    """A GptTmpl.inf security template is missing or unreadable."""


@dataclass
class Outcome:
    """Result of one query run by the QueryExecutor.

    Attributes:
        pages: Number of pages handed to the page callback
        entries: Number of entries across those pages
        error: The failure that ended the query early, if any
    """
    pages: int = 0
    entries: int = 0
    error: Optional[AdscopeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None
