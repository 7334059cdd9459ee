"""Runtime configuration for the filemcp server."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from .types import RootBoundary

load_dotenv()

DEFAULT_ADDR = ":8443"
DEFAULT_HOST = "0.0.0.0"


class ConfigError(Exception):
    """Raised when the server cannot be configured from the given arguments."""


def root_directory(args: Sequence[str]) -> RootBoundary:
    """
    Pick the root directory from positional arguments.

    No argument means the user's home directory. The path is made absolute
    but symlinks in it are kept as given; it must exist and be a directory.
    """
    if len(args) > 1:
        raise ConfigError(f"too many arguments: {' '.join(args)}")
    raw = args[0] if args else str(Path.home())

    root = os.path.abspath(raw)
    if not os.path.exists(root):
        raise ConfigError(f"no such directory: {root}")
    if not os.path.isdir(root):
        raise ConfigError(f"not a directory: {root}")
    return RootBoundary(path=Path(root))


def split_addr(addr: str) -> Tuple[str, int]:
    """Split 'host:port' (host optional, as in ':8443') into its parts."""
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigError(f"bad address: {addr}")
    host = host.strip("[]") or DEFAULT_HOST
    return host, int(port)


@dataclass(frozen=True)
class ServerConfig:
    """Everything main() needs; built once at startup and never changed."""

    root: RootBoundary
    stdio: bool = False
    sse: bool = False
    http: bool = False
    addr: str = DEFAULT_ADDR
    cert: Optional[str] = None
    key: Optional[str] = None
    log: bool = False
    logfile: Optional[str] = None
    strategy: str = "auto"

    @property
    def use_https(self) -> bool:
        return self.sse or self.http

    @property
    def host_port(self) -> Tuple[str, int]:
        return split_addr(self.addr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filemcp",
        description="Read-only filesystem MCP server confined to one root directory.",
    )
    parser.add_argument("--log", action="store_true", help="Enable logging.")
    parser.add_argument("--logfile", default=os.getenv("FILEMCP_LOGFILE"), help="Log file path.")
    parser.add_argument("--stdio", action="store_true", help="Use stdio transport.")
    parser.add_argument(
        "--sse",
        action="store_true",
        help="Use SSE transport at /sse (requires --cert and --key).",
    )
    parser.add_argument(
        "--http",
        action="store_true",
        help="Use streaming HTTP transport at /mcp (requires --cert and --key).",
    )
    parser.add_argument("--addr", default=os.getenv("FILEMCP_ADDR", DEFAULT_ADDR), help="HTTPS server address.")
    parser.add_argument("--cert", default=os.getenv("FILEMCP_CERT"), help="TLS certificate file.")
    parser.add_argument("--key", default=os.getenv("FILEMCP_KEY"), help="TLS key file.")
    parser.add_argument(
        "--strategy",
        choices=["auto", "handle", "lexical"],
        default=os.getenv("FILEMCP_STRATEGY", "auto"),
        help="Path confinement strategy (default: handle where supported).",
    )
    parser.add_argument("root", nargs="*", help="Root directory (default: home directory).")
    return parser


def parse_config(argv: Optional[List[str]] = None) -> ServerConfig:
    """
    Parse command-line flags into a ServerConfig.

    Flag mistakes exit through argparse; a bad root directory or address
    raises ConfigError.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not (args.stdio or args.sse or args.http):
        parser.error("at least one of --stdio, --sse, or --http must be specified")
    if (args.sse or args.http) and not (args.cert and args.key):
        parser.error("--cert and --key are required for --sse or --http transport")

    config = ServerConfig(
        root=root_directory(args.root),
        stdio=args.stdio,
        sse=args.sse,
        http=args.http,
        addr=args.addr,
        cert=args.cert,
        key=args.key,
        log=args.log,
        logfile=args.logfile,
        strategy=args.strategy,
    )
    if config.use_https:
        split_addr(config.addr)
    return config
