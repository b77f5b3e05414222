"""
Matching Module
===============

Template storage and multi-scale template search.

Components:
    - CorrelationPrimitive / OpenCVCorrelation: peak normalized correlation
    - TemplateStore: immutable template sets with atomic hot swap
    - MultiScaleMatcher: coarse/fine scale search, first acceptable wins
"""

from screenwatch.matching.correlation import CorrelationPrimitive, OpenCVCorrelation
from screenwatch.matching.templates import (
    TEMPLATE_EXTENSIONS,
    TemplateLoadError,
    TemplateStore,
    list_template_files,
    load_template,
)
from screenwatch.matching.matcher import (
    COARSE_SCALES,
    WORST_SCORE,
    MatcherMetrics,
    MultiScaleMatcher,
    fine_scales_for,
)

__all__ = [
    "CorrelationPrimitive",
    "OpenCVCorrelation",
    "TEMPLATE_EXTENSIONS",
    "TemplateLoadError",
    "TemplateStore",
    "list_template_files",
    "load_template",
    "COARSE_SCALES",
    "WORST_SCORE",
    "MatcherMetrics",
    "MultiScaleMatcher",
    "fine_scales_for",
]
