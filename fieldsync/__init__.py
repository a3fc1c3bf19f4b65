"""
fieldsync - Central collector for offline field-survey polygon edits.

Field clients (mobile GIS collectors) push partial updates about shared
polygons; fieldsync reconciles them against the stored record set and derives
per-project and per-contributor progress statistics.

Subpackages:
- fieldsync.sync     Project registry, merge reconciler, sync service.
- fieldsync.metrics  Date expander and statistics aggregation.
- fieldsync.storage  Record Store interface, in-memory and PostgreSQL stores.
- fieldsync.api      FastAPI application wiring the core onto HTTP routes.
- fieldsync.viz      Plotly figures for the hierarchy and daily timeline.
"""

__version__ = "0.1.0"
