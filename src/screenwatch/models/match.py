"""
Matching Models
===============

Data models passed between the template store, the matcher and the frame
processor.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


WEAK_PREFIX = "weak_"


@dataclass(frozen=True, slots=True)
class Template:
    """
    Immutable grayscale template.

    Attributes:
        name: File name of the template, unique within a set
        gray: 2-D uint8 raster
    """

    name: str
    gray: np.ndarray

    def __post_init__(self) -> None:
        """Validate invariants."""
        if not self.name:
            raise ValueError("template name must be non-empty")
        if self.gray.ndim != 2:
            raise ValueError(f"template {self.name} must be 2-D, got {self.gray.shape}")

    @property
    def width(self) -> int:
        return int(self.gray.shape[1])

    @property
    def height(self) -> int:
        return int(self.gray.shape[0])


@dataclass(frozen=True, slots=True)
class TemplateSet:
    """
    Active set of templates, replaced wholesale on reload.

    Attributes:
        templates: Templates in stable matching order
        version: Monotonic counter bumped on every swap
    """

    templates: Tuple[Template, ...] = ()
    version: int = 0

    def __len__(self) -> int:
        return len(self.templates)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(t.name for t in self.templates)


@dataclass(frozen=True, slots=True)
class ScaleProbe:
    """
    Score of one template at one scale.

    A failed probe carries the worst possible score and the error text,
    so the search treats it as a non-match and moves on.
    """

    scale: float
    score: float
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class MatchResult:
    """
    Outcome of a successful template search on one frame.

    Attributes:
        template_name: Matched template (prefixed "weak_" for weak matches)
        score: Best normalized correlation score
        scale: Template scale at which the best score was found
        elapsed_ms: Time spent searching the winning template
        is_weak: Score fell within the weak margin below threshold
    """

    template_name: str
    score: float
    scale: float
    elapsed_ms: float
    is_weak: bool = False
