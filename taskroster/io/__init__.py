"""I/O utilities for loading requests and exporting schedules."""

from .request_loader import (
    export_assignments_csv,
    import_assignments_csv,
    load_request,
    request_from_dict,
)

__all__ = [
    "request_from_dict",
    "load_request",
    "import_assignments_csv",
    "export_assignments_csv",
]
