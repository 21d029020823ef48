"""MCP server implementation."""
import asyncio
import json
from dataclasses import asdict
from typing import Any, Dict, List, Optional

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.models import InitializationOptions
from mcp.server import stdio

from mcp_rpkg_dev import __version__
from mcp_rpkg_dev.config import get_settings
from mcp_rpkg_dev.errors import DevToolsError, log_error
from mcp_rpkg_dev.logging import configure_logging, get_logger
from mcp_rpkg_dev.namespaces.loader import load_all, unload, unit_name
from mcp_rpkg_dev.namespaces.manager import EnvironmentManager
from mcp_rpkg_dev.toolchain.check import check
from mcp_rpkg_dev.toolchain.examples import dev_example, run_examples
from mcp_rpkg_dev.toolchain.install import install_git

logger = get_logger("server")

PATH_PROPERTY = {"type": "string", "description": "Path to the package source directory"}

tools = [
    types.Tool(
        name="rpkg_check",
        description="Build a package and run R CMD check on it",
        inputSchema={
            "type": "object",
            "properties": {
                "path": PATH_PROPERTY,
                "document": {"type": "boolean", "description": "Check Rd files against usage first"},
                "cleanup": {"type": "boolean", "description": "Remove the check directory on success"},
                "cran": {"type": "boolean", "description": "Use CRAN check settings"},
                "check_version": {"type": "boolean", "description": "Run incoming CRAN checks"},
                "args": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["path"],
        },
    ),
    types.Tool(
        name="rpkg_install_git",
        description="Install packages from Git repositories",
        inputSchema={
            "type": "object",
            "properties": {
                "git_url": {
                    "oneOf": [
                        {"type": "string"},
                        {"type": "array", "items": {"type": "string"}},
                    ],
                    "description": "Repository URL or list of URLs",
                },
                "name": {"type": "string"},
                "subdir": {"type": "string"},
                "branch": {"type": "string"},
                "git_binary": {"type": "string"},
                "recursive": {"type": "boolean"},
            },
            "required": ["git_url"],
        },
    ),
    types.Tool(
        name="rpkg_load",
        description="Load a package under development without installing it",
        inputSchema={
            "type": "object",
            "properties": {
                "path": PATH_PROPERTY,
                "reset": {"type": "boolean", "description": "Rebuild namespace from scratch"},
                "export_all": {"type": "boolean", "description": "Attach internal objects too"},
            },
            "required": ["path"],
        },
    ),
    types.Tool(
        name="rpkg_unload",
        description="Unload a package loaded with rpkg_load",
        inputSchema={
            "type": "object",
            "properties": {
                "package": {"type": "string", "description": "Package name or path"}
            },
            "required": ["package"],
        },
    ),
    types.Tool(
        name="rpkg_run_examples",
        description="Run all Rd examples of a package",
        inputSchema={
            "type": "object",
            "properties": {
                "path": PATH_PROPERTY,
                "start": {"type": "string", "description": "Rd file name to start with"},
                "strict": {"type": "boolean", "description": "Install and run in clean sessions"},
            },
            "required": ["path"],
        },
    ),
    types.Tool(
        name="rpkg_dev_example",
        description="Run the examples for a topic of a loaded package",
        inputSchema={
            "type": "object",
            "properties": {
                "topic": {"type": "string"},
                "strict": {"type": "boolean"},
            },
            "required": ["topic"],
        },
    ),
    types.Tool(
        name="rpkg_search",
        description="List the search path of loaded packages",
        inputSchema={"type": "object", "properties": {}},
    ),
]


async def handle_tool(
    manager: EnvironmentManager, name: str, arguments: Dict[str, Any]
) -> Dict[str, Any]:
    """Run one tool call and return its result payload."""
    if name == "rpkg_check":
        result = await check(
            arguments["path"],
            document=arguments.get("document", True),
            cleanup=arguments.get("cleanup", True),
            cran=arguments.get("cran", True),
            check_version=arguments.get("check_version", False),
            args=arguments.get("args"),
        )
        return {
            "success": result.success,
            "data": {
                "package": result.package,
                "check_dir": str(result.check_dir) if result.kept else None,
                "markers": [
                    {"severity": m.severity.name, "check": m.check} for m in result.markers
                ],
                "doc_problems": [
                    {"topic": p.topic, "message": p.message, "arguments": list(p.arguments)}
                    for p in result.doc_problems
                ],
                "output": result.output,
            },
        }

    elif name == "rpkg_install_git":
        installed = await install_git(
            arguments["git_url"],
            name=arguments.get("name"),
            subdir=arguments.get("subdir"),
            branch=arguments.get("branch"),
            git_binary=arguments.get("git_binary"),
            recursive=arguments.get("recursive", False),
        )
        return {"success": True, "data": {"installed": installed}}

    elif name == "rpkg_load":
        chain = load_all(
            manager,
            arguments["path"],
            reset=arguments.get("reset", False),
            export_all=arguments.get("export_all", True),
        )
        return {
            "success": True,
            "data": {
                "package": chain.unit,
                "objects": sorted(manager.ns_scope(chain.unit).bindings),
                "exports": sorted(manager.pkg_scope(chain.unit).bindings),
                "search": manager.search(),
            },
        }

    elif name == "rpkg_unload":
        package = unit_name(arguments["package"])
        unloaded = unload(manager, package)
        return {
            "success": True,
            "data": {"package": package, "unloaded": unloaded, "search": manager.search()},
        }

    elif name == "rpkg_run_examples":
        results = await run_examples(
            arguments["path"],
            start=arguments.get("start"),
            strict=arguments.get("strict", True),
        )
        return {"success": True, "data": {"examples": [asdict(r) for r in results]}}

    elif name == "rpkg_dev_example":
        result = await dev_example(
            manager, arguments["topic"], strict=arguments.get("strict", False)
        )
        return {"success": True, "data": asdict(result) if result else None}

    elif name == "rpkg_search":
        return {"success": True, "data": {"search": manager.search()}}

    return {"success": False, "error": f"Unknown tool: {name}"}


async def dispatch(
    manager: EnvironmentManager, name: str, arguments: Optional[Dict[str, Any]]
) -> list[types.TextContent]:
    """Run a tool call, reporting failures in the JSON payload."""
    logger.debug("tool_call_received", tool=name, arguments=arguments)
    try:
        payload = await handle_tool(manager, name, arguments or {})
    except DevToolsError as e:
        log_error(e, {"tool": name}, logger)
        payload = {"success": False, "error": str(e), "code": e.code, "details": e.details}
    except (KeyError, ValueError, OSError) as e:
        log_error(e, {"tool": name}, logger)
        payload = {"success": False, "error": str(e)}
    return [types.TextContent(type="text", text=json.dumps(payload, default=str))]


async def init_server(manager: Optional[EnvironmentManager] = None) -> Server:
    manager = manager or EnvironmentManager()
    logger.info("tools_registered", tools=[t.name for t in tools])

    server = Server("mcp-rpkg-dev")

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        logger.debug("tools_requested")
        return tools

    @server.call_tool()
    async def call_tool(name: str, arguments: Dict[str, Any]) -> list[types.TextContent]:
        return await dispatch(manager, name, arguments)

    return server


async def serve() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("server_starting", version=__version__)
    server = await init_server()
    async with stdio.stdio_server() as (read_stream, write_stream):
        init_options = InitializationOptions(
            server_name="mcp-rpkg-dev",
            server_version=__version__,
            capabilities=types.ServerCapabilities(
                tools=types.ToolsCapability(listChanged=False),
                logging=types.LoggingCapability(),
            ),
        )
        await server.run(read_stream, write_stream, init_options)


def main() -> None:
    """Run the MCP server."""
    asyncio.run(serve())
