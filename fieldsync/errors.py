"""
fieldsync/errors.py - Error taxonomy shared by the core and its callers.

ValidationError and ProjectNotFoundError never touch storage state.
PersistenceError is raised after the in-flight batch has been rolled back;
the underlying store exception is chained as __cause__.
"""


class FieldSyncError(Exception):
    """Base class for all fieldsync errors."""


class ValidationError(FieldSyncError):
    """The request is malformed (missing batch, missing project key, bad type)."""


class ProjectNotFoundError(FieldSyncError):
    """Statistics or detail requested for a project name that does not exist."""

    def __init__(self, name: str):
        super().__init__(f"Project '{name}' not found.")
        self.name = name


class PersistenceError(FieldSyncError):
    """The Record Store failed; the whole batch was discarded."""

    retryable = True
