"""
Template Store
==============

Owns the active set of grayscale templates and swaps it atomically.

Design Rules:
    - The active TemplateSet is immutable; reloads build a new set and
      replace the reference in one assignment
    - Readers call snapshot() once per search and never see a mix of old
      and new templates
    - There is one writer at a time (the reload path holds a lock); readers
      never lock
    - Listeners are notified after the new set is visible
    - Templates longer than max_dimension on either edge are downscaled
      once at load time

Example:
    store = TemplateStore(template_dir=Path("PingerLove/Templates"))
    store.subscribe(lambda: print("templates changed"))
    store.reload()

    templates = store.snapshot()
    for template in templates.templates:
        ...
"""

import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import cv2
import numpy as np

from screenwatch.models.match import Template, TemplateSet


logger = logging.getLogger(__name__)


TEMPLATE_EXTENSIONS = (".png", ".jpg")

TemplateDir = Union[Path, Callable[[], Path]]


class TemplateLoadError(Exception):
    """Raised when a template image cannot be decoded."""
    pass


def list_template_files(directory: Path) -> List[Path]:
    """Template image files in a directory, sorted by name."""
    if not directory.is_dir():
        return []
    return sorted(
        (
            path for path in directory.iterdir()
            if path.is_file() and path.name.lower().endswith(TEMPLATE_EXTENSIONS)
        ),
        key=lambda path: path.name,
    )


def load_template(path: Path, max_dimension: int = 3200) -> Template:
    """
    Decode an image file into a grayscale Template.

    Args:
        path: Image file
        max_dimension: Longest edge allowed before downscaling

    Returns:
        Template named after the file

    Raises:
        TemplateLoadError: If the file cannot be read or decoded
    """
    try:
        data = np.fromfile(str(path), dtype=np.uint8)
    except OSError as e:
        raise TemplateLoadError(f"Failed to read template {path.name}: {e}")

    gray = cv2.imdecode(data, cv2.IMREAD_GRAYSCALE)
    if gray is None:
        raise TemplateLoadError(
            f"Failed to decode template {path.name}: cv2.imdecode returned None"
        )

    height, width = gray.shape[:2]
    if width > max_dimension or height > max_dimension:
        factor = max_dimension / max(width, height)
        new_size = (max(1, int(width * factor)), max(1, int(height * factor)))
        gray = cv2.resize(gray, new_size, interpolation=cv2.INTER_AREA)
        logger.debug(
            f"Template {path.name} downscaled {width}x{height} -> "
            f"{new_size[0]}x{new_size[1]}"
        )

    return Template(name=path.name, gray=gray)


class TemplateStore:
    """
    Holder of the active TemplateSet.

    Attributes:
        max_dimension: Longest template edge kept after loading
        version: Version of the active set (0 before the first load)
    """

    def __init__(
        self,
        template_dir: Optional[TemplateDir] = None,
        max_dimension: int = 3200,
    ) -> None:
        """
        Initialize an empty store.

        Args:
            template_dir: Directory (or a callable resolving it) used by reload()
            max_dimension: Longest template edge kept after loading
        """
        self._template_dir = template_dir
        self.max_dimension = max_dimension

        self._current: TemplateSet = TemplateSet()
        self._write_lock = threading.Lock()
        self._listeners: List[Callable[[], None]] = []

    @property
    def template_dir(self) -> Optional[Path]:
        if callable(self._template_dir):
            return self._template_dir()
        return self._template_dir

    @property
    def version(self) -> int:
        return self._current.version

    @property
    def is_empty(self) -> bool:
        return len(self._current) == 0

    def snapshot(self) -> TemplateSet:
        """Current set. Hold on to it for the whole search."""
        return self._current

    def subscribe(self, callback: Callable[[], None]) -> None:
        """Register a parameterless callback run after every swap."""
        self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def swap(self, templates: Sequence[Template]) -> TemplateSet:
        """
        Replace the active set.

        The old set stays valid for any search still holding it and is
        dropped once the last reference goes away.

        Args:
            templates: New templates in matching order

        Returns:
            The newly active set
        """
        names = [t.name for t in templates]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate template names: {names}")

        with self._write_lock:
            new_set = TemplateSet(
                templates=tuple(templates),
                version=self._current.version + 1,
            )
            self._current = new_set

        self._notify()
        return new_set

    def load_from_dir(self, directory: Path) -> TemplateSet:
        """
        Load every template image from a directory and swap it in.

        Files that fail to decode are logged and skipped.

        Args:
            directory: Directory with *.png / *.jpg templates

        Returns:
            The newly active set
        """
        logger.debug(f"Loading templates from: {directory}")
        loaded: List[Template] = []
        for path in list_template_files(Path(directory)):
            try:
                loaded.append(load_template(path, self.max_dimension))
            except TemplateLoadError as e:
                logger.error(str(e))

        new_set = self.swap(loaded)
        logger.info(
            f"Loaded {len(new_set)} templates (version={new_set.version}): "
            f"{list(new_set.names)}"
        )
        return new_set

    def reload(self) -> TemplateSet:
        """Reload from the configured template directory."""
        directory = self.template_dir
        if directory is None:
            raise ValueError("TemplateStore has no template directory configured")
        return self.load_from_dir(directory)

    def clear(self) -> None:
        """Drop all templates (used on shutdown)."""
        self.swap([])
        logger.debug("Released all templates")

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception as e:
                logger.error(f"Template swap listener failed: {e}")
