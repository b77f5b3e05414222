"""
Multi-Scale Matcher
===================

Two-phase scale search of every active template over a grayscale frame.

Per template:
    1. Coarse phase: score at scales 1.0, 0.7 and 0.5
    2. Early exit: coarse best below (threshold - early_exit_margin) means
       the template is assumed absent and the fine phase is skipped
    3. Fine phase: refine around the coarse best scale
         best >= 0.9   -> 0.95, 0.90, 0.85
         best >= 0.65  -> best + 0.05, best - 0.05
         otherwise     -> 0.55, 0.48, 0.45
    4. Decision: score >= threshold is a strong match; score >= threshold
       minus weak_match_margin is a weak match; otherwise next template

The first template that clears either threshold wins. Templates are visited
in the store's order, so overlapping templates resolve by file name.

Scales whose resized template would exceed the image, or drop below
min_template_size in either axis, are skipped. A probe that fails inside
resize or correlation scores WORST_SCORE and the search continues.
"""

import logging
import math
import time
from typing import Callable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from screenwatch.config import LiveConfig
from screenwatch.matching.correlation import CorrelationPrimitive, OpenCVCorrelation
from screenwatch.matching.templates import TemplateStore
from screenwatch.models.match import WEAK_PREFIX, MatchResult, ScaleProbe, Template


logger = logging.getLogger(__name__)


COARSE_SCALES: Tuple[float, ...] = (1.0, 0.7, 0.5)
HIGH_FINE_SCALES: Tuple[float, ...] = (0.95, 0.9, 0.85)
LOW_FINE_SCALES: Tuple[float, ...] = (0.55, 0.48, 0.45)
MID_FINE_OFFSET = 0.05

WORST_SCORE = float("-inf")

# Scores within this distance of threshold get a per-scale debug line
DEBUG_SCORE_MARGIN = 0.10


def fine_scales_for(best_scale: float) -> List[float]:
    """Fine-phase bracket around a coarse best scale."""
    if best_scale >= 0.9:
        candidates: Sequence[float] = HIGH_FINE_SCALES
    elif best_scale >= 0.65:
        candidates = (best_scale + MID_FINE_OFFSET, best_scale - MID_FINE_OFFSET)
    else:
        candidates = LOW_FINE_SCALES
    return [s for s in candidates if not math.isclose(s, best_scale)]


class MatcherMetrics:
    """Counters for matcher observability."""

    __slots__ = (
        "searches",
        "strong_matches",
        "weak_matches",
        "early_exits",
        "probe_errors",
    )

    def __init__(self) -> None:
        self.searches: int = 0
        self.strong_matches: int = 0
        self.weak_matches: int = 0
        self.early_exits: int = 0
        self.probe_errors: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "searches": self.searches,
            "strong_matches": self.strong_matches,
            "weak_matches": self.weak_matches,
            "early_exits": self.early_exits,
            "probe_errors": self.probe_errors,
        }


class MultiScaleMatcher:
    """
    First-acceptable-template matcher over a TemplateStore.

    Attributes:
        store: Source of the active template set
        live_config: Threshold and margins, read on every call
        correlation: Correlation backend
        min_template_size: Smallest scaled template edge worth scoring
        metrics: Search counters
    """

    def __init__(
        self,
        store: TemplateStore,
        live_config: LiveConfig,
        correlation: Optional[CorrelationPrimitive] = None,
        min_template_size: int = 30,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.store = store
        self.live_config = live_config
        self.correlation = correlation or OpenCVCorrelation()
        self.min_template_size = min_template_size
        self._clock = clock
        self.metrics = MatcherMetrics()

    def match(self, gray: np.ndarray) -> Optional[MatchResult]:
        """
        Search a grayscale frame for the first acceptable template.

        Args:
            gray: 2-D uint8 frame

        Returns:
            MatchResult for the first template clearing the strong or weak
            threshold, or None
        """
        template_set = self.store.snapshot()
        if not template_set.templates:
            logger.warning("No templates loaded")
            return None

        self.metrics.searches += 1
        threshold = self.live_config.match_threshold
        weak_threshold = threshold - self.live_config.weak_match_margin
        early_exit_threshold = threshold - self.live_config.early_exit_margin

        best_by_template: List[Tuple[str, float]] = []

        for template in template_set.templates:
            started = self._clock()
            best_score, best_scale, probes = self._search(
                template, gray, early_exit_threshold,
            )
            elapsed_ms = (self._clock() - started) * 1000.0
            best_by_template.append((template.name, best_score))

            if best_score > threshold - DEBUG_SCORE_MARGIN and probes:
                top = sorted(probes, key=lambda p: p.score, reverse=True)[:5]
                scores_str = ", ".join(f"{p.scale:.2f}={p.score:.3f}" for p in top)
                logger.debug(
                    f"[{template.name}] {len(probes)} scales in {elapsed_ms:.0f}ms, "
                    f"best: [{scores_str}]"
                )

            if best_score >= threshold:
                self.metrics.strong_matches += 1
                logger.info(
                    f"Matched: {template.name} (score={best_score:.3f}, "
                    f"scale={best_scale:.2f}, threshold={threshold})"
                )
                return MatchResult(
                    template_name=template.name,
                    score=best_score,
                    scale=best_scale,
                    elapsed_ms=elapsed_ms,
                    is_weak=False,
                )

            if best_score >= weak_threshold:
                self.metrics.weak_matches += 1
                logger.info(
                    f"Weak match: {template.name} (score={best_score:.3f}, "
                    f"scale={best_scale:.2f}, threshold={threshold}, "
                    f"diff={threshold - best_score:.3f})"
                )
                return MatchResult(
                    template_name=f"{WEAK_PREFIX}{template.name}",
                    score=best_score,
                    scale=best_scale,
                    elapsed_ms=elapsed_ms,
                    is_weak=True,
                )

        top = sorted(best_by_template, key=lambda item: item[1], reverse=True)[:3]
        logger.debug(
            f"No match (threshold={threshold}). Top scores: "
            f"{[f'{name}={score:.3f}' for name, score in top]}"
        )
        return None

    def _search(
        self,
        template: Template,
        image: np.ndarray,
        early_exit_threshold: float,
    ) -> Tuple[float, float, List[ScaleProbe]]:
        """Coarse then (unless exiting early) fine search of one template."""
        best_score = WORST_SCORE
        best_scale = 1.0
        probes: List[ScaleProbe] = []

        for scale in COARSE_SCALES:
            probe = self._probe(template, image, scale)
            if probe is None:
                continue
            probes.append(probe)
            if probe.score > best_score:
                best_score, best_scale = probe.score, probe.scale

        if best_score < early_exit_threshold:
            self.metrics.early_exits += 1
            if len(probes) == len(COARSE_SCALES):
                logger.debug(
                    f"[{template.name}] Skipped fine search "
                    f"(coarse best={best_score:.3f})"
                )
            return best_score, best_scale, probes

        for scale in fine_scales_for(best_scale):
            probe = self._probe(template, image, scale)
            if probe is None:
                continue
            probes.append(probe)
            if probe.score > best_score:
                best_score, best_scale = probe.score, probe.scale

        return best_score, best_scale, probes

    def _probe(
        self,
        template: Template,
        image: np.ndarray,
        scale: float,
    ) -> Optional[ScaleProbe]:
        """
        Score a template at one scale.

        Returns:
            None when the scale is out of bounds, otherwise a ScaleProbe
            (WORST_SCORE with an error message if scoring failed)
        """
        scaled_width = int(template.width * scale)
        scaled_height = int(template.height * scale)
        image_height, image_width = image.shape[:2]

        if scaled_width > image_width or scaled_height > image_height:
            return None
        if scaled_width < self.min_template_size or scaled_height < self.min_template_size:
            return None

        try:
            if math.isclose(scale, 1.0):
                scaled = template.gray
            else:
                scaled = cv2.resize(
                    template.gray,
                    (scaled_width, scaled_height),
                    interpolation=cv2.INTER_AREA,
                )
            score, _ = self.correlation.match_score(image, scaled)
        except Exception as e:
            self.metrics.probe_errors += 1
            logger.error(f"Scoring {template.name} at scale={scale:.2f} failed: {e}")
            return ScaleProbe(scale=scale, score=WORST_SCORE, error=str(e))

        if math.isnan(score):
            return ScaleProbe(scale=scale, score=WORST_SCORE, error="nan score")
        return ScaleProbe(scale=scale, score=float(score))
