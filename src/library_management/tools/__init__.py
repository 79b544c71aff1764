"""MCP tools: every state-changing operation of the library."""

from .accounts import account_tools
from .administration import administration_tools
from .catalog import catalog_tools
from .circulation import circulation_tools

all_tools = circulation_tools + catalog_tools + account_tools + administration_tools

__all__ = [
    "account_tools",
    "administration_tools",
    "all_tools",
    "catalog_tools",
    "circulation_tools",
]
