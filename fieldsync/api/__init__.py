"""
fieldsync.api - FastAPI application exposing the sync core.

Modules:
    endpoints  create_app(store) wiring /api/sync, /api/projects,
               /api/project/{name}, /api/data/{layer}, /api/layers,
               /api/status and /api/health onto fieldsync.sync.service.
"""
