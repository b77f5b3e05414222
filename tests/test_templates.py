"""
Template Store Tests
====================

Tests for template loading and hot swapping.
"""

import numpy as np
import pytest

from screenwatch.matching.templates import (
    TemplateLoadError,
    TemplateStore,
    list_template_files,
    load_template,
)
from screenwatch.models.match import Template
from conftest import textured_gray, write_png


def gray_template(name: str, size: int = 40) -> Template:
    return Template(name=name, gray=np.zeros((size, size), dtype=np.uint8))


class TestTemplateLoading:
    """Tests for reading template files."""

    def test_lists_images_sorted_by_name(self, tmp_path):
        write_png(tmp_path / "b.png", textured_gray(40, 40))
        write_png(tmp_path / "a.png", textured_gray(40, 40))
        (tmp_path / "notes.txt").write_text("ignore me")

        names = [path.name for path in list_template_files(tmp_path)]

        assert names == ["a.png", "b.png"]

    def test_missing_directory_lists_nothing(self, tmp_path):
        assert list_template_files(tmp_path / "missing") == []

    def test_loads_as_grayscale(self, tmp_path):
        path = write_png(tmp_path / "login.png", textured_gray(64, 48))

        template = load_template(path)

        assert template.name == "login.png"
        assert template.gray.ndim == 2
        assert (template.width, template.height) == (64, 48)

    def test_oversized_template_downscaled(self, tmp_path):
        path = write_png(tmp_path / "wide.png", textured_gray(400, 100))

        template = load_template(path, max_dimension=200)

        assert (template.width, template.height) == (200, 50)

    def test_undecodable_file_raises(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")

        with pytest.raises(TemplateLoadError):
            load_template(path)


class TestTemplateStore:
    """Tests for TemplateStore swaps and notifications."""

    def test_starts_empty(self):
        store = TemplateStore()
        assert store.is_empty
        assert store.version == 0

    def test_swap_replaces_set_and_bumps_version(self):
        store = TemplateStore()
        first = store.swap([gray_template("a.png")])
        second = store.swap([gray_template("b.png")])

        assert first.version == 1
        assert second.version == 2
        assert store.snapshot().names == ("b.png",)

    def test_old_snapshot_unchanged_after_swap(self):
        store = TemplateStore()
        store.swap([gray_template("a.png")])
        held = store.snapshot()

        store.swap([])

        assert held.names == ("a.png",)
        assert store.is_empty

    def test_duplicate_names_rejected(self):
        store = TemplateStore()
        with pytest.raises(ValueError):
            store.swap([gray_template("a.png"), gray_template("a.png")])
        assert store.version == 0

    def test_listeners_notified_after_swap(self):
        store = TemplateStore()
        seen = []
        store.subscribe(lambda: seen.append(store.snapshot().version))

        store.swap([gray_template("a.png")])

        assert seen == [1]

    def test_failing_listener_does_not_block_others(self):
        store = TemplateStore()
        calls = []

        def broken():
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.subscribe(lambda: calls.append("ok"))
        store.swap([gray_template("a.png")])

        assert calls == ["ok"]

    def test_unsubscribe(self):
        store = TemplateStore()
        calls = []

        def callback():
            calls.append(1)

        store.subscribe(callback)
        store.unsubscribe(callback)

        store.swap([gray_template("a.png")])

        assert calls == []

    def test_reload_skips_broken_files(self, tmp_path):
        write_png(tmp_path / "a.png", textured_gray(40, 40))
        (tmp_path / "b.png").write_bytes(b"garbage")
        write_png(tmp_path / "c.png", textured_gray(40, 40))

        store = TemplateStore(template_dir=tmp_path)
        template_set = store.reload()

        assert template_set.names == ("a.png", "c.png")

    def test_reload_resolves_callable_directory(self, tmp_path):
        write_png(tmp_path / "a.png", textured_gray(40, 40))
        store = TemplateStore(template_dir=lambda: tmp_path)

        assert store.reload().names == ("a.png",)

    def test_reload_without_directory_raises(self):
        with pytest.raises(ValueError):
            TemplateStore().reload()

    def test_clear_releases_templates(self):
        store = TemplateStore()
        store.swap([gray_template("a.png")])
        store.clear()
        assert store.is_empty
