"""Tool registry: authentication gate and error boundary for every tool.

Each tool is an async function decorated with ``gas_tool``. The decorator
records it in TOOLS and wraps it so that:

- tools that need Google credentials authenticate first (clasp tools skip this);
- every exception, of any type, comes back as the text
  ``Tool execution failed: <message>`` instead of propagating.

The wrapper keeps the original signature (functools.wraps), so FastMCP
derives and validates the input schema from the handler's annotations.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from gasmcp.sdk.context import ServerContext, build_context
from gasmcp.sdk.exceptions import UnknownToolError

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Tool execution failed"


@dataclass(frozen=True)
class ToolSpec:
    name: str
    handler: Callable[..., Awaitable[str]]
    requires_auth: bool


TOOLS: dict[str, ToolSpec] = {}

_context: Optional[ServerContext] = None


def set_context(context: Optional[ServerContext]):
    """Install the context used by all tools (None clears it)."""
    global _context
    _context = context


def get_context() -> ServerContext:
    """The installed context, built from the environment on first use."""
    global _context
    if _context is None:
        _context = build_context()
    return _context


def format_error(error: Exception) -> str:
    return f"{ERROR_PREFIX}: {error}"


def gas_tool(requires_auth: bool = True):
    """Register an async tool handler behind the auth gate and error boundary."""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> str:
            try:
                if requires_auth:
                    auth = get_context().auth
                    if not auth.is_authenticated():
                        await asyncio.to_thread(auth.authenticate)
                return await func(*args, **kwargs)
            except Exception as e:
                logger.error(f"Tool '{func.__name__}' failed: {e}")
                return format_error(e)

        TOOLS[func.__name__] = ToolSpec(func.__name__, wrapper, requires_auth)
        return wrapper
    return decorator


async def dispatch(name: str, arguments: Optional[dict[str, Any]] = None) -> str:
    """
    Call a registered tool by name.

    Unknown names are reported through the same error text as tool failures.
    """
    spec = TOOLS.get(name)
    if spec is None:
        error = UnknownToolError(f"Unknown tool: {name}")
        logger.error(str(error))
        return format_error(error)
    return await spec.handler(**(arguments or {}))
