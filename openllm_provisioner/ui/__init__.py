"""Terminal display components for the OpenLLM provisioner."""

from .display import display_service_table, display_targets_table

__all__ = [
    'display_service_table',
    'display_targets_table',
]
