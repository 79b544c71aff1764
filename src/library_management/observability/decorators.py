"""Decorators for tracing MCP tools and resources."""

import functools
from collections.abc import Callable
from datetime import datetime
from typing import Any

import logfire


def trace_tool(tool_name: str):
    """Wrap an async tool handler in a ``tool.execution.<name>`` span."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                f"tool.execution.{tool_name}",
                tool_name=tool_name,
                tool_category=_categorize_tool(tool_name),
            ) as span:
                start_time = datetime.now()

                arguments = args[0] if args and isinstance(args[0], dict) else kwargs
                _add_attributes(span, "input", arguments)

                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    span.set_attribute("tool.success", False)
                    span.set_attribute("tool.error", str(e))
                    raise

                success = isinstance(result, dict) and result.get("success", False)
                span.set_attribute("tool.success", success)
                span.set_attribute(
                    "tool.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                )
                if not success and isinstance(result, dict) and result.get("error"):
                    span.set_attribute("tool.error", result["error"])
                return result

        return wrapper

    return decorator


def trace_resource(resource_type: str):
    """Wrap an async resource handler in a ``resource.read.<type>`` span."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                f"resource.read.{resource_type}",
                resource_type=resource_type,
            ) as span:
                _add_attributes(span, "params", kwargs)
                result = await func(*args, **kwargs)

                count = _item_count(result)
                if count is not None:
                    span.set_attribute("result.item_count", count)
                return result

        return wrapper

    return decorator


def _categorize_tool(tool_name: str) -> str:
    if tool_name in ("borrow_item", "return_item", "renew_loan", "collect_fine"):
        return "circulation"
    if "reservation" in tool_name or tool_name == "reserve_item":
        return "reservations"
    if "item" in tool_name:
        return "catalog"
    if "patron" in tool_name or "staff" in tool_name:
        return "accounts"
    return "administration"


def _add_attributes(span, prefix: str, data: dict):
    for key, value in data.items():
        if "password" in key:
            continue
        if isinstance(value, str | int | float | bool):
            span.set_attribute(f"{prefix}.{key}", value)


def _item_count(result: Any) -> int | None:
    if isinstance(result, list):
        return len(result)
    if isinstance(result, dict):
        for key in ("items", "loans", "records", "backups"):
            if isinstance(result.get(key), list):
                return len(result[key])
    return None
