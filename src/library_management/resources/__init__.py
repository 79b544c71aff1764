"""Library Management MCP resources.

Resources are the read side of the server: catalogue browsing, loan and
fine listings, reports and administrative status. Every state change goes
through a tool instead.
"""

from .administration import administration_resources
from .catalog import catalog_resources
from .circulation import circulation_resources
from .patrons import patron_resources
from .reports import report_resources

all_resources = (
    catalog_resources
    + circulation_resources
    + patron_resources
    + report_resources
    + administration_resources
)

__all__ = [
    "administration_resources",
    "all_resources",
    "catalog_resources",
    "circulation_resources",
    "patron_resources",
    "report_resources",
]
