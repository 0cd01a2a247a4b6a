from __future__ import annotations

from engine.types import FilterRange
from render.build_map import FALLBACK_STYLE, MAPBOX_STYLE, build_map_plot, polygon_rings
from render.color import LINE_COLOR, class_gray, fill_color, rgba_css, update_triggers


def _feature(geometry: dict, class_val) -> dict:
    return {"type": "Feature", "geometry": geometry, "properties": {"class_val": class_val}}


SQUARE = {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]]}
MULTI = {
    "type": "MultiPolygon",
    "coordinates": [
        [[[2, 2], [3, 2], [3, 3], [2, 2]]],
        [[[4, 4], [5, 4], [5, 5], [4, 4]]],
    ],
}


def test_gray_ramp_endpoints_and_clamping():
    assert class_gray(1) == 0
    assert class_gray(25) == 255
    assert class_gray(13) == 128
    assert class_gray(-4) == 0
    assert class_gray(99) == 255


def test_gray_ramp_rounds_halves_up():
    # (5 - 1) / 24 * 255 == 42.5
    assert class_gray(5) == 43


def test_missing_or_non_numeric_class_is_darkest():
    assert class_gray(None) == 0
    assert class_gray("n/a") == 0
    assert class_gray(float("nan")) == 0
    assert fill_color({"properties": {}}) == [0, 0, 0, 180]
    assert fill_color({}) == [0, 0, 0, 180]


def test_fill_color_is_gray_with_fixed_alpha():
    assert fill_color(_feature(SQUARE, 25)) == [255, 255, 255, 180]
    assert LINE_COLOR == [0, 0, 0, 80]


def test_rgba_css():
    assert rgba_css([255, 255, 255, 255]) == "rgba(255, 255, 255, 1.0)"
    assert rgba_css([0, 0, 0, 80]) == "rgba(0, 0, 0, 0.314)"


def test_update_triggers_follow_filter_bounds():
    assert update_triggers(FilterRange(min=3, max=9)) == {"getFillColor": [3, 9]}


def test_polygon_rings_split_multipolygons_and_ignore_points():
    assert len(polygon_rings(SQUARE)) == 1
    assert len(polygon_rings(MULTI)) == 2
    assert polygon_rings({"type": "Point", "coordinates": [0, 0]}) == []


def test_build_map_plot_groups_features_by_color():
    collection = {
        "type": "FeatureCollection",
        "features": [
            _feature(SQUARE, 1),
            _feature(MULTI, 25),
            _feature(SQUARE, None),
        ],
    }
    plot = build_map_plot(collection, frange=FilterRange(1, 25), mapbox_token=None)
    traces = plot["data"]
    # class 1 and unclassified share the darkest color.
    assert len(traces) == 2
    assert traces[0]["fillcolor"] == "rgba(0, 0, 0, 0.706)"
    assert traces[0]["name"] == "class 1"
    assert traces[1]["fillcolor"] == "rgba(255, 255, 255, 0.706)"
    # Two squares, each ring closed and separated by None.
    assert traces[0]["lon"].count(None) == 2
    assert traces[1]["lon"].count(None) == 2
    assert all(t["fill"] == "toself" for t in traces)

    layout = plot["layout"]
    assert layout["mapbox"]["style"] == FALLBACK_STYLE
    assert "accesstoken" not in layout["mapbox"]
    assert layout["mapbox"]["pitch"] == 45.0
    assert layout["meta"]["updateTriggers"] == {"getFillColor": [1, 25]}
    assert layout["meta"]["stats"]["renderedPolygons"] == 3
    assert layout["meta"]["terrain"] is None


def test_build_map_plot_uses_token_for_satellite_terrain_basemap():
    plot = build_map_plot(None, frange=FilterRange(2, 4), mapbox_token="pk.test")
    assert plot["data"] == []
    mapbox = plot["layout"]["mapbox"]
    assert mapbox["style"] == MAPBOX_STYLE
    assert mapbox["accesstoken"] == "pk.test"
    assert plot["layout"]["meta"]["terrain"]["exaggeration"] == 1.2
    assert plot["layout"]["meta"]["filter"] == {"min": 2, "max": 4}
