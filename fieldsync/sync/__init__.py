"""
fieldsync.sync - Write path: project registry, merge reconciler, sync service.

Modules:
    registry   ensure_project(): create a project or replace its metadata.
    reconcile  reconcile(): per-field fill-if-empty merge of a batch.
    service    sync_batch() and the read helpers used by the API and CLI.
"""

from fieldsync.sync.reconcile import ReconcileResult, reconcile
from fieldsync.sync.registry import ensure_project
