"""Tests for maskedit.sizing."""

from __future__ import annotations

import itertools

import pytest

from maskedit.config import BackendLimits, default_backends
from maskedit.errors import InvalidImageDimensions, InvalidImageFormat
from maskedit.sizing import (
    SizeNegotiator,
    catalog_score,
    check_input_limits,
    is_legal,
    round_to_multiple,
    select_catalog_size,
)
from maskedit.types import WorkingGeometry


@pytest.fixture
def stability_limits() -> BackendLimits:
    return default_backends()["stabilityai"].limits


@pytest.fixture
def replicate_limits() -> BackendLimits:
    return default_backends()["replicate"].limits


class TestRoundToMultiple:
    def test_half_rounds_up(self):
        assert round_to_multiple(96, 64) == 128
        assert round_to_multiple(95.9, 64) == 64

    def test_never_zero(self):
        assert round_to_multiple(10, 64) == 64
        assert round_to_multiple(0.1, 8) == 8


class TestContinuous:
    def test_small_square_scaled_up(self, stability_limits):
        geometry = SizeNegotiator(stability_limits).fit(300, 300)
        assert geometry == WorkingGeometry(512, 512)

    def test_large_image_scaled_down(self, stability_limits):
        geometry = SizeNegotiator(stability_limits).fit(4000, 3000)
        assert is_legal(geometry, stability_limits)
        assert geometry.pixels <= stability_limits.max_resolution
        assert geometry.width > geometry.height

    def test_in_range_size_kept(self, replicate_limits):
        geometry = SizeNegotiator(replicate_limits).fit(800, 600)
        assert geometry == WorkingGeometry(800, 600)

    def test_legal_for_many_sizes(self, stability_limits, replicate_limits):
        sides = [1, 17, 64, 300, 513, 1000, 1999, 2048, 3000, 5000]
        for limits in (stability_limits, replicate_limits):
            negotiator = SizeNegotiator(limits)
            for w, h in itertools.product(sides, sides):
                geometry = negotiator.fit(w, h)
                assert is_legal(geometry, limits), (w, h, geometry)

    def test_deterministic(self, stability_limits):
        negotiator = SizeNegotiator(stability_limits)
        assert negotiator.fit(1234, 567) == negotiator.fit(1234, 567)

    def test_aspect_roughly_preserved(self, replicate_limits):
        geometry = SizeNegotiator(replicate_limits).fit(1600, 900)
        assert abs(geometry.aspect_ratio - 16 / 9) < 0.05

    def test_infeasible_limits_raise(self):
        limits = BackendLimits(
            pixel_multiple=64, min_resolution=1_000_000, max_resolution=1_000_000,
        )
        with pytest.raises(InvalidImageDimensions):
            SizeNegotiator(limits).fit(1000, 1000)

    def test_non_positive_rejected(self, stability_limits):
        with pytest.raises(InvalidImageDimensions):
            SizeNegotiator(stability_limits).fit(0, 100)


class TestCatalog:
    def test_openai_catalog(self):
        negotiator = SizeNegotiator(default_backends()["openai"].limits)
        assert negotiator.is_catalog
        assert negotiator.fit(1000, 667) == WorkingGeometry(1024, 1024)
        assert negotiator.fit(300, 280) == WorkingGeometry(256, 256)

    def test_recraft_catalog(self):
        limits = default_backends()["recraft"].limits
        negotiator = SizeNegotiator(limits)
        assert len(limits.supported_sizes) == 15
        # 1024x1024 ~0.523 edges out 1280x1024 ~0.529 and 1365x1024 ~0.531
        assert negotiator.fit(1000, 667) == WorkingGeometry(1024, 1024)
        assert negotiator.fit(1024, 1536) == WorkingGeometry(1024, 1536)
        assert negotiator.fit(2000, 1000) == WorkingGeometry(2048, 1024)
        assert negotiator.fit(1707, 1024) == WorkingGeometry(1707, 1024)

    def test_score_prefers_scale_match_over_aspect(self):
        # 1000x667: 1024x1024 scores ~0.523, 1365x1024 ~0.531
        catalog = [WorkingGeometry(1024, 1024), WorkingGeometry(1365, 1024)]
        assert catalog_score(1000, 667, catalog[0]) < catalog_score(1000, 667, catalog[1])
        assert select_catalog_size(1000, 667, catalog) == WorkingGeometry(1024, 1024)

    def test_exact_entry_wins(self):
        catalog = [WorkingGeometry(1024, 1024), WorkingGeometry(1536, 1024)]
        assert select_catalog_size(1536, 1024, catalog) == WorkingGeometry(1536, 1024)

    def test_ties_go_to_first_entry(self):
        catalog = [WorkingGeometry(1100, 1100), WorkingGeometry(900, 900)]
        assert select_catalog_size(1000, 1000, catalog) == WorkingGeometry(1100, 1100)
        assert select_catalog_size(1000, 1000, catalog[::-1]) == WorkingGeometry(900, 900)

    def test_result_is_catalog_member(self):
        limits = BackendLimits(supported_sizes=["1024x1024", "1536x1024", "1024x1536"])
        negotiator = SizeNegotiator(limits)
        for w, h in [(1, 1), (5000, 100), (100, 5000), (777, 778)]:
            assert is_legal(negotiator.fit(w, h), limits)


class TestInputLimits:
    def test_file_too_large(self, stability_limits):
        with pytest.raises(InvalidImageFormat, match="file size"):
            check_input_limits(100, 100, stability_limits, source_size=11 * 1024 * 1024)

    def test_aspect_ratio(self, stability_limits):
        with pytest.raises(InvalidImageDimensions, match="aspect ratio"):
            check_input_limits(5000, 1000, stability_limits)

    def test_max_input_dimension(self, replicate_limits):
        with pytest.raises(InvalidImageDimensions, match="exceed"):
            check_input_limits(5000, 1000, replicate_limits)

    def test_min_input_dimension(self):
        limits = default_backends()["recraft"].limits
        with pytest.raises(InvalidImageDimensions, match="below minimum"):
            check_input_limits(200, 800, limits)
        check_input_limits(256, 256, limits)

    def test_max_input_resolution(self):
        limits = BackendLimits(max_input_resolution=1000)
        with pytest.raises(InvalidImageDimensions, match="resolution"):
            check_input_limits(40, 30, limits)
        check_input_limits(40, 25, limits)

    def test_within_limits(self, stability_limits):
        check_input_limits(1000, 800, stability_limits, source_size=1024)
