from . import (
    automation_conditions,
    automation_engine,
    automation_executor,
    automation_matcher,
    automation_service,
    automation_store,
    automation_types,
    due_date_sweep,
    permissions,
)

__all__ = [
    "automation_conditions",
    "automation_engine",
    "automation_executor",
    "automation_matcher",
    "automation_service",
    "automation_store",
    "automation_types",
    "due_date_sweep",
    "permissions",
]
"""Service-layer helpers for automation and rule lifecycle operations."""
