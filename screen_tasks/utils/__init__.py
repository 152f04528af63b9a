"""Utility functions for screen-tasks."""

from screen_tasks.utils.urls import (
    has_significant_url_change,
    normalize_url,
    get_hostname,
    get_origin,
    is_cross_domain,
)
from screen_tasks.utils.masking import mask_sensitive
from screen_tasks.utils.serialization import to_jsonable

__all__ = [
    "has_significant_url_change",
    "normalize_url",
    "get_hostname",
    "get_origin",
    "is_cross_domain",
    "mask_sensitive",
    "to_jsonable",
]
