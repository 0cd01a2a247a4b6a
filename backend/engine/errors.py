from __future__ import annotations


class ViewerError(Exception):
    """
    Base class for failures surfaced on the viewer status line.

    Each subclass maps to one failure class of the data pipeline; `status()` renders
    the user-facing message.
    """

    status_prefix = "Error"

    def status(self) -> str:
        return f"{self.status_prefix}: {self}"


class EngineBootstrapError(ViewerError):
    status_prefix = "Engine initialization failed"


class SchemaDiscoveryError(ViewerError):
    status_prefix = "Schema discovery failed"


class QueryExecutionError(ViewerError):
    status_prefix = "Query failed"


class MaterializationError(ViewerError):
    status_prefix = "Materialization failed"


class GeometryParseError(MaterializationError):
    pass


class RunSuperseded(ViewerError):
    """Raised between pipeline steps once a newer run has been triggered."""

    status_prefix = "Superseded"
