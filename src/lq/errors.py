"""Domain exceptions.

Services raise these; the global handler in ``lq.middleware.error_handler``
turns any that reach the app into ``{"detail": ...}`` with ``status_code``.
Raising aborts the request before commit, so no partial state is persisted.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base for errors that map onto an HTTP status."""

    status_code = 400


class NotFoundError(DomainError):
    status_code = 404


class ForbiddenError(DomainError, PermissionError):
    status_code = 403


class ConflictError(DomainError):
    status_code = 409


# --- Ledger ---


class LedgerError(DomainError):
    """Base for balance and ownership violations. Nothing is written."""


class InsufficientCoinsError(LedgerError):
    pass


class InsufficientGamePointsError(LedgerError):
    pass


class InsufficientXPError(LedgerError):
    pass


class AlreadyOwnedError(LedgerError, ConflictError):
    status_code = 409


# --- Classroom ---


class ClassroomError(DomainError):
    pass


class AlreadyJoinedError(ClassroomError):
    pass


# --- Hackathon ---


class HackathonError(DomainError):
    pass


class TeamSizeError(HackathonError):
    pass


class AlreadyInTeamError(HackathonError):
    pass


class SubmissionsClosedError(HackathonError):
    pass


class NotTeamMemberError(HackathonError, ForbiddenError):
    status_code = 403
