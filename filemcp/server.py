from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Optional

import uvicorn
from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field
from starlette.applications import Starlette

from .config import DEFAULT_HOST, ConfigError, ServerConfig, parse_config
from .errors import FileToolError
from .filetools import FileTools
from .rootfs import ConfinedFS, open_root

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
SERVER_NAME = "filemcp"

LOGGER = logging.getLogger(__name__)

TOOL_DESCRIPTIONS: Dict[str, str] = {
    "read_file": "Read the contents of a file. Returns the file content as text.",
    "list_directory": "List the contents of a directory. Returns file names, types, and sizes.",
    "search_files": "Search for files matching a glob pattern (e.g., '*.go', 'test*', '*.md').",
    "get_file_info": "Get detailed information about a file or directory.",
}

READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True)


def setup_logging(enabled: bool, logfile: Optional[str] = None) -> None:
    """Log to stderr (or logfile) when enabled; stdout belongs to the stdio transport."""
    if not enabled:
        logging.disable(logging.CRITICAL)
        return
    if logfile:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, filename=logfile, filemode="a")
    else:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, stream=sys.stderr)


async def _invoke(name: str, func: Callable[..., Any], *args: Any) -> Dict[str, Any]:
    """Run a blocking file operation off the event loop and shape its result."""
    LOGGER.debug("%s%r", name, args)
    try:
        result = await asyncio.to_thread(func, *args)
    except FileToolError as exc:
        LOGGER.info("%s failed: %s", name, exc)
        raise
    return result.as_dict()


def build_tools(tools: FileTools) -> Dict[str, Callable[..., Awaitable[Dict[str, Any]]]]:
    """Map each tool name to its handler."""

    async def read_file(
        path: Annotated[str, Field(description="path to the file relative to root directory")],
    ) -> Dict[str, Any]:
        return await _invoke("read_file", tools.read_file, path)

    async def list_directory(
        path: Annotated[str, Field(description="path to directory relative to root (empty for root)")] = "",
    ) -> Dict[str, Any]:
        return await _invoke("list_directory", tools.list_directory, path)

    async def search_files(
        pattern: Annotated[str, Field(description="glob pattern to match files, e.g. '*.txt'")],
    ) -> Dict[str, Any]:
        return await _invoke("search_files", tools.search_files, pattern)

    async def get_file_info(
        path: Annotated[str, Field(description="path to the file relative to root directory")],
    ) -> Dict[str, Any]:
        return await _invoke("get_file_info", tools.get_file_info, path)

    return {
        "read_file": read_file,
        "list_directory": list_directory,
        "search_files": search_files,
        "get_file_info": get_file_info,
    }


def build_server(fs: ConfinedFS, host: str = DEFAULT_HOST) -> FastMCP:
    """
    Register the four tools on a FastMCP server.

    host is the listen host. FastMCP only turns on its Host-header check for
    a loopback host, so clients may use any name for an address like 0.0.0.0.
    """
    server = FastMCP(SERVER_NAME, host=host)
    for name, handler in build_tools(FileTools(fs)).items():
        server.add_tool(handler, name=name, description=TOOL_DESCRIPTIONS[name], annotations=READ_ONLY)
    return server


def build_https_app(server: FastMCP, config: ServerConfig) -> Starlette:
    """Serve SSE at /sse and streamable HTTP at /mcp, whichever are enabled."""
    routes: List[Any] = []
    if config.sse:
        LOGGER.info("adding SSE handler at %s", server.settings.sse_path)
        routes.extend(server.sse_app().routes)
    if not config.http:
        return Starlette(routes=routes)

    LOGGER.info("adding streaming HTTP handler at %s", server.settings.streamable_http_path)
    routes.extend(server.streamable_http_app().routes)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        async with server.session_manager.run():
            yield

    return Starlette(routes=routes, lifespan=lifespan)


async def serve(server: FastMCP, config: ServerConfig) -> None:
    """Run every enabled transport; the first one to stop ends the server."""
    tasks: List[asyncio.Task] = []
    if config.use_https:
        host, port = config.host_port
        uv_config = uvicorn.Config(
            build_https_app(server, config),
            host=host,
            port=port,
            ssl_certfile=config.cert,
            ssl_keyfile=config.key,
            log_config=None,
        )
        LOGGER.info("starting HTTPS server on %s", config.addr)
        tasks.append(asyncio.create_task(uvicorn.Server(uv_config).serve(), name="https"))
    if config.stdio:
        LOGGER.info("starting stdio transport")
        tasks.append(asyncio.create_task(server.run_stdio_async(), name="stdio"))

    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
    for task in done:
        task.result()


def main(argv: Optional[List[str]] = None) -> None:
    try:
        config = parse_config(argv)
    except ConfigError as exc:
        print(f"filemcp: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    setup_logging(config.log, config.logfile)
    args = " ".join(sys.argv[1:] if argv is None else argv)
    LOGGER.info("starting filemcp args=%r pid=%s", args, os.getpid())

    try:
        with open_root(config.root, config.strategy) as fs:
            host = config.host_port[0] if config.use_https else DEFAULT_HOST
            asyncio.run(serve(build_server(fs, host), config))
    except (OSError, ValueError) as exc:
        LOGGER.error("%s", exc)
        print(f"filemcp: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    LOGGER.info("exiting filemcp pid=%s", os.getpid())


if __name__ == "__main__":
    main()
