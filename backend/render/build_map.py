from __future__ import annotations

from typing import Any

from shapely.geometry import GeometryCollection, MultiPolygon, Polygon, shape

from engine.types import FeatureCollection, FilterRange
from render.color import LINE_COLOR, fill_color, rgba_css, update_triggers

INITIAL_VIEW = {
    "longitude": -73.9857,
    "latitude": 40.7484,
    "zoom": 5.0,
    "pitch": 45.0,
    "bearing": 0.0,
}
MAPBOX_STYLE = "mapbox://styles/mapbox/satellite-streets-v12"
# Tokenless fallback basemap.
FALLBACK_STYLE = "carto-positron"
TERRAIN = {
    "source": "mapbox-dem",
    "url": "mapbox://mapbox.mapbox-terrain-dem-v1",
    "tileSize": 512,
    "maxzoom": 14,
    "exaggeration": 1.2,
}


def polygon_rings(geometry: dict[str, Any]) -> list[list[tuple[float, float]]]:
    """
    Exterior rings of every polygon part; non-areal geometries yield nothing.
    """
    geom = shape(geometry)
    polys: list[Polygon] = []
    if isinstance(geom, Polygon):
        polys.append(geom)
    elif isinstance(geom, MultiPolygon):
        polys.extend(geom.geoms)
    elif isinstance(geom, GeometryCollection):
        for part in geom.geoms:
            if isinstance(part, Polygon):
                polys.append(part)
            elif isinstance(part, MultiPolygon):
                polys.extend(part.geoms)

    rings: list[list[tuple[float, float]]] = []
    for poly in polys:
        if poly.is_empty:
            continue
        ext = [(float(c[0]), float(c[1])) for c in poly.exterior.coords]
        if len(ext) >= 4:
            rings.append(ext)
    return rings


def trace_polygons(
    features: list[dict[str, Any]], *, color: list[int], name: str
) -> dict[str, Any]:
    lons: list[float | None] = []
    lats: list[float | None] = []
    for f in features:
        for ring in polygon_rings(f.get("geometry") or {}):
            if ring[0] != ring[-1]:
                ring = [*ring, ring[0]]
            for lon, lat in ring:
                lons.append(lon)
                lats.append(lat)
            lons.append(None)
            lats.append(None)
    return {
        "type": "scattermapbox",
        "name": name,
        "lon": lons,
        "lat": lats,
        "mode": "lines",
        "fill": "toself",
        "fillcolor": rgba_css(color),
        "line": {"color": rgba_css(LINE_COLOR), "width": 0},
        "hoverinfo": "skip",
    }


def build_map_plot(
    collection: FeatureCollection | None,
    *,
    frange: FilterRange,
    mapbox_token: str | None = None,
    stats: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Plotly mapbox payload: one filled trace per distinct fill color, over a terrain basemap.
    """
    features = list((collection or {}).get("features") or [])

    # Group by color so each trace carries a single fillcolor; keep first-seen order.
    groups: dict[tuple[int, ...], list[dict[str, Any]]] = {}
    for f in features:
        groups.setdefault(tuple(fill_color(f)), []).append(f)

    traces: list[dict[str, Any]] = []
    for color, feats in groups.items():
        classes = sorted(
            {
                f["properties"].get("class_val")
                for f in feats
                if (f.get("properties") or {}).get("class_val") is not None
            }
        )
        if classes:
            name = f"class {classes[0]}" if len(classes) == 1 else f"class {classes[0]}-{classes[-1]}"
        else:
            name = "unclassified"
        traces.append(trace_polygons(feats, color=list(color), name=name))

    mapbox: dict[str, Any] = {
        "center": {"lat": INITIAL_VIEW["latitude"], "lon": INITIAL_VIEW["longitude"]},
        "zoom": INITIAL_VIEW["zoom"],
        "pitch": INITIAL_VIEW["pitch"],
        "bearing": INITIAL_VIEW["bearing"],
    }
    if mapbox_token:
        mapbox["style"] = MAPBOX_STYLE
        mapbox["accesstoken"] = mapbox_token
    else:
        mapbox["style"] = FALLBACK_STYLE

    return {
        "data": traces,
        "layout": {
            "mapbox": mapbox,
            "showlegend": False,
            "margin": {"l": 0, "r": 0, "t": 0, "b": 0},
            "meta": {
                "terrain": TERRAIN if mapbox_token else None,
                "updateTriggers": update_triggers(frange),
                "filter": {"min": int(frange.min), "max": int(frange.max)},
                "stats": {
                    "renderedPolygons": len(features),
                    "traces": len(traces),
                    "run": stats or {},
                },
            },
        },
    }
