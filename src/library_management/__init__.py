"""Library Management MCP Server.

Catalog, patron accounts, circulation (borrow, return, renew, reserve),
fines and reporting exposed over the Model Context Protocol.
"""

__version__ = "0.1.0"
