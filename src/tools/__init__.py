"""
External Tool Package.

Wraps the programs the recipe delegates to (Lhotse CLI, kaldilm and the
recipe's own scripts) behind one interface: invoke with arguments,
capture the exit status, optionally capture stdout.

Usage
-----
    from tools import get_tool, list_tools, ToolError

    lhotse = get_tool('lhotse')
    lhotse.combine([a, b], out)

    list_tools()
    # {'compile_hlg': False, 'kaldilm': True, 'lhotse': True, ...}
"""
from __future__ import annotations

from .base import BaseCorpusTool, CorpusTool, ToolError, ToolResult
from .factory import get_tool, get_tool_info, list_tools, register_tool, registered_tools

__all__ = [
    # Base classes and types
    'BaseCorpusTool',
    'CorpusTool',
    'ToolError',
    'ToolResult',
    # Factory functions
    'get_tool',
    'get_tool_info',
    'list_tools',
    'register_tool',
    'registered_tools',
]
