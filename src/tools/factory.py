"""
External Tool Factory and Registry.

Provides centralized tool management with automatic registration
and configuration-based command overrides.

Usage
-----
    from tools.factory import get_tool, list_tools, register_tool

    # Get a tool with its default command
    lhotse = get_tool('lhotse')

    # Override the command (e.g. a different environment)
    lhotse = get_tool('lhotse', command=['/opt/venv/bin/lhotse'])

    # List tools and whether they are installed
    tools = list_tools()

    # Register custom tool
    @register_tool('custom')
    class CustomTool(BaseCorpusTool):
        ...
"""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .base import CorpusTool

# Tool registry: name -> tool class
_tool_registry: dict[str, type] = {}


def register_tool(name: str):
    """
    Decorator to register a tool implementation.

    Parameters
    ----------
    name : str
        Tool name (e.g., 'lhotse', 'compile_hlg')

    Returns
    -------
    Callable
        Decorator function

    Example
    -------
        @register_tool('kaldilm')
        class KaldilmTool(BaseCorpusTool):
            ...
    """
    def decorator(cls):
        cls.name = name
        _tool_registry[name] = cls
        return cls
    return decorator


def get_tool(
    name: str,
    command: Optional[Sequence[str]] = None,
    timeout: Optional[float] = None,
    cwd: Optional[Path] = None,
) -> 'CorpusTool':
    """
    Get an external tool instance.

    Parameters
    ----------
    name : str
        Registered tool name
    command : list[str], optional
        Command prefix overriding the tool's default
    timeout : float, optional
        Per-invocation timeout in seconds
    cwd : Path, optional
        Working directory (recipe scripts resolve against it)

    Returns
    -------
    CorpusTool
        Configured tool instance

    Raises
    ------
    ValueError
        If tool name is not recognized
    """
    _ensure_tools_loaded()

    if name not in _tool_registry:
        available = ', '.join(sorted(_tool_registry.keys()))
        raise ValueError(
            f"Unknown tool: '{name}'. Available tools: {available}"
        )

    tool_cls = _tool_registry[name]
    return tool_cls(command=command, timeout=timeout, cwd=cwd)


def registered_tools() -> list[str]:
    """Names of all registered tools, sorted."""
    _ensure_tools_loaded()
    return sorted(_tool_registry)


def list_tools(cwd: Optional[Path] = None, commands: Optional[dict] = None) -> dict[str, bool]:
    """
    List all registered tools and their availability.

    Parameters
    ----------
    cwd : Path, optional
        Recipe directory used to resolve script paths
    commands : dict, optional
        Per-tool command overrides

    Returns
    -------
    dict[str, bool]
        Dictionary of tool_name -> is_available

    Example
    -------
        >>> list_tools()
        {'compile_hlg': False, 'kaldilm': True, 'lhotse': True, ...}
    """
    return {
        name: info['available']
        for name, info in (
            (n, get_tool_info(n, cwd=cwd, command=(commands or {}).get(n)))
            for n in registered_tools()
        )
    }


def get_tool_info(
    name: str,
    cwd: Optional[Path] = None,
    command: Optional[Sequence[str]] = None,
) -> dict:
    """
    Get detailed information about a tool.

    Returns
    -------
    dict
        Tool information including:
        - name: str
        - available: bool
        - command: list[str]
        - message: str
    """
    _ensure_tools_loaded()

    if name not in _tool_registry:
        return {
            'name': name,
            'available': False,
            'command': [],
            'message': f"Unknown tool: {name}",
        }

    try:
        tool = get_tool(name, command=command, cwd=cwd)
    except ValueError as e:
        return {
            'name': name,
            'available': False,
            'command': [],
            'message': str(e),
        }

    available, message = tool.validate_installation()
    return {
        'name': name,
        'available': available,
        'command': list(tool.command),
        'message': message,
    }


def _ensure_tools_loaded() -> None:
    """Ensure all tool modules are imported for registration."""
    # Importing triggers the @register_tool decorators (once per process)
    from . import commands  # noqa: F401
