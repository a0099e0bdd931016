"""Tests for imported segment normalization."""

import pytest

from medgas_mcp.importer import bbox_width, fit_scale, normalize_segments


class TestNormalize:
    def test_auto_fit_scale(self):
        result = normalize_segments([(0, 0, 1200, 0), (100, 50, 100, 900)])
        assert result.scale == 0.5
        assert result.segments[0] == (0.0, 0.0, 1200.0, 0.0)

    def test_accepts_point_pairs(self):
        result = normalize_segments([{"p1": (10, 20), "p2": (40, 60)}])
        assert result.segments == [(10.0, 20.0, 40.0, 60.0)]
        assert result.scale == 20.0

    def test_flip_y(self):
        result = normalize_segments([(0, 5, 10, -3)], flip_y=True)
        assert result.segments == [(0.0, -5.0, 10.0, 3.0)]

    def test_empty_falls_back_to_one(self):
        result = normalize_segments([])
        assert result.segments == []
        assert result.scale == 1.0

    def test_zero_width_falls_back_to_one(self):
        result = normalize_segments([(5, 0, 5, 100)])
        assert result.scale == 1.0

    def test_custom_target_width(self):
        assert normalize_segments([(0, 0, 100, 0)], target_width=250).scale == 2.5


class TestHelpers:
    def test_bbox_width_spans_all_segments(self):
        assert bbox_width([(-50, 0, 0, 0), (10, 0, 70, 0)]) == 120

    def test_fit_scale_degenerate(self):
        assert fit_scale([]) is None
        assert fit_scale([(1, 1, 1, 5)]) is None

    def test_bad_segment(self):
        with pytest.raises(ValueError):
            normalize_segments([(0, 0, 1)])
