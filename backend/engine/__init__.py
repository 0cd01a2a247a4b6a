"""
Backend data engine.

The engine bootstraps an in-process DuckDB database and runs the GeoParquet pipeline
against it: discover the remote dataset's columns, build a normalized query, and
materialize the rows as a GeoJSON FeatureCollection.
"""
