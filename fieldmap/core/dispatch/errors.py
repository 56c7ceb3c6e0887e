# fieldmap/core/dispatch/errors.py
"""
Typed dispatch errors.

Each error carries a short user-facing ``title`` plus ``detail`` text.
Public engine operations catch ``DispatchError`` subtypes and turn them
into a ``Notice`` for the host UI; nothing here is fatal to the process.
Transport/parse failures never reach this hierarchy: the store degrades
them to empty collections.
"""
from __future__ import annotations

from fieldmap.core.dispatch.notices import Notice, NoticeLevel


class DispatchError(Exception):
    """Base class for all dispatch domain errors."""

    title: str = "Error"
    level: NoticeLevel = NoticeLevel.ERROR

    def __init__(self, detail: str = "Something went wrong.", *, title: str | None = None):
        self.detail = detail
        if title is not None:
            self.title = title
        super().__init__(detail)

    def as_notice(self) -> Notice:
        return Notice(title=self.title, message=self.detail, level=self.level)


class ValidationError(DispatchError):
    """Operation rejected before any state change or network call."""

    title = "Not Allowed"
    level = NoticeLevel.WARNING


class CommitError(DispatchError):
    """Server rejected an assignment or optimization; local state rolled back."""

    title = "Request Failed"


class PermissionDeniedError(DispatchError):
    """Device permission refused; a single feature is disabled."""

    title = "Permission Denied"
    level = NoticeLevel.INFO
