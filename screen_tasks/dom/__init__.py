"""DOM normalization and element lookup."""

from screen_tasks.dom.normalizer import (
    SkeletonResult,
    clean_dom,
    extract_text_content,
    hash_dom,
    normalize,
    skeletonize,
)
from screen_tasks.dom.elements import ElementIndex, sanitize_selector

__all__ = [
    "SkeletonResult",
    "clean_dom",
    "extract_text_content",
    "hash_dom",
    "normalize",
    "skeletonize",
    "ElementIndex",
    "sanitize_selector",
]
