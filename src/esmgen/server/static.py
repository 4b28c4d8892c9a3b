"""Static server for converted packages using aiohttp.

Serves the output root as plain files. ``/`` answers with a custom page
when one is configured, else with a generated index listing every package
directory and an import snippet for it. When the requested port is taken
the server moves on to the next one.
"""

from __future__ import annotations

import asyncio
import errno
import html
import logging
import os
import re
import signal
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from aiohttp import web

from esmgen.constants import Constants
from esmgen.errors import ServerBindFailed

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"[^0-9A-Za-z_$]+")


@dataclass
class ServerConfig:
    """Configuration for the static server."""

    root_dir: str = Constants.DEFAULT_DIR
    host: str = Constants.DEFAULT_HOST
    port: int = Constants.DEFAULT_PORT
    entry_file: Optional[str] = None
    max_port_attempts: Optional[int] = None

    @classmethod
    def from_config(cls, config: Any, root_dir: Optional[str] = None) -> "ServerConfig":
        """Create a server config from an EsmgenConfig."""
        return cls(
            root_dir=root_dir or config.output_root,
            host=config.host,
            port=config.port,
            entry_file=config.entry_file,
            max_port_attempts=config.max_port_attempts,
        )


def list_packages(root_dir: str) -> List[str]:
    """Return package directory names under ``root_dir``, sorted.

    Scope directories (``@scope``) contribute their children as
    ``@scope/name@version``.
    """
    packages: List[str] = []
    try:
        entries = sorted(os.scandir(root_dir), key=lambda e: e.name)
    except OSError:
        return packages
    for entry in entries:
        if not entry.is_dir() or entry.name.startswith("."):
            continue
        if entry.name.startswith("@") and "@" not in entry.name[1:]:
            try:
                children = sorted(os.scandir(entry.path), key=lambda e: e.name)
            except OSError:
                continue
            packages.extend(
                f"{entry.name}/{child.name}"
                for child in children
                if child.is_dir() and not child.name.startswith(".")
            )
        else:
            packages.append(entry.name)
    return packages


def import_identifier(package: str) -> str:
    """Derive a JavaScript identifier from ``name@version``."""
    name = package.rsplit("@", 1)[0] if package.rfind("@") > 0 else package
    name = name.split("/")[-1]
    words = [w for w in _IDENTIFIER_RE.split(name) if w]
    if not words:
        return "pkg"
    ident = words[0] + "".join(w[:1].upper() + w[1:] for w in words[1:])
    if ident[0].isdigit():
        ident = "_" + ident
    return ident


def import_snippet(package: str) -> str:
    return f'import * as {import_identifier(package)} from "/{package}/{Constants.BUNDLE_FILE}";'


def render_index(root_dir: str) -> str:
    """Render the discovery page for ``root_dir``."""
    packages = list_packages(root_dir)
    if packages:
        items = "\n".join(
            "    <li><h2>{name}</h2><pre><code>{snippet}</code></pre></li>".format(
                name=html.escape(package), snippet=html.escape(import_snippet(package))
            )
            for package in packages
        )
        body = f"  <ul>\n{items}\n  </ul>"
    else:
        body = "  <p>No packages converted yet.</p>"
    return (
        "<!DOCTYPE html>\n"
        "<html>\n<head>\n"
        '  <meta charset="utf-8">\n'
        "  <title>esmgen packages</title>\n"
        "</head>\n<body>\n"
        "  <h1>Available packages</h1>\n"
        f"{body}\n"
        "</body>\n</html>\n"
    )


def _is_address_in_use(exc: OSError) -> bool:
    return exc.errno in (errno.EADDRINUSE, getattr(errno, "WSAEADDRINUSE", errno.EADDRINUSE))


class StaticServer:
    """Serve converted packages over HTTP."""

    def __init__(self, config: ServerConfig):
        """Initialize the server.

        Args:
            config: Server configuration.
        """
        self._config = config
        self._root = os.path.abspath(config.root_dir)
        self._runner: Optional[web.AppRunner] = None
        self._bound_port: Optional[int] = None

    @property
    def bound_port(self) -> Optional[int]:
        return self._bound_port

    @property
    def url(self) -> str:
        port = self._bound_port if self._bound_port is not None else self._config.port
        host = self._config.host
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        return f"http://{host}:{port}"

    def _create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application()
        app.router.add_get("/", self._handle_root)
        app.router.add_get(Constants.HEALTH_PATH, self._health_check)
        app.router.add_static("/", self._root, show_index=False, follow_symlinks=False)
        return app

    async def _health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({"status": "ok", "root": self._root, "port": self._bound_port})

    def _custom_entry_path(self) -> Optional[str]:
        entry = self._config.entry_file
        if not entry:
            return None
        path = entry if os.path.isabs(entry) else os.path.join(self._root, entry)
        return path if os.path.isfile(path) else None

    async def _handle_root(self, request: web.Request) -> web.StreamResponse:
        """Serve the custom entry page or the generated index."""
        custom = self._custom_entry_path()
        if custom is not None:
            return web.FileResponse(custom)
        if self._config.entry_file:
            logger.warning("Entry file %s not found; serving generated index", self._config.entry_file)
        return web.Response(text=render_index(self._root), content_type="text/html")

    async def _bind(self, runner: web.AppRunner) -> Tuple[web.TCPSite, int]:
        """Bind the first free port starting at the configured one.

        Raises:
            ServerBindFailed: A bind error other than address-in-use, the
                attempt limit was reached, or the port range ran out.
        """
        port = self._config.port
        attempts = 0
        while True:
            if port > Constants.MAX_PORT:
                raise ServerBindFailed(f"no free port up to {Constants.MAX_PORT}")
            site = web.TCPSite(runner, self._config.host, port)
            attempts += 1
            try:
                await site.start()
                return site, port
            except OSError as exc:
                await site.stop()
                if not _is_address_in_use(exc):
                    raise ServerBindFailed(
                        f"failed to start server on {self._config.host}:{port}: {exc}", cause=exc
                    ) from exc
                limit = self._config.max_port_attempts
                if limit and attempts >= limit:
                    raise ServerBindFailed(
                        f"port {port} is in use and {attempts} attempt(s) were made", cause=exc
                    ) from exc
                logger.warning("Port %s is in use, trying port %s...", port, port + 1)
                port += 1

    async def start(self) -> None:
        """Start listening; ``bound_port`` and ``url`` reflect the real socket."""
        if not os.path.isdir(self._root):
            logger.warning("Serving directory %s does not exist yet", self._root)
        self._runner = web.AppRunner(self._create_app())
        await self._runner.setup()
        try:
            _, port = await self._bind(self._runner)
        except ServerBindFailed:
            await self._runner.cleanup()
            self._runner = None
            raise
        self._bound_port = _actual_port(self._runner) or port
        logger.info("Serving %s on %s", self._root, self.url)

    async def stop(self) -> None:
        """Stop the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None


def _actual_port(runner: web.AppRunner) -> Optional[int]:
    for address in runner.addresses:
        if isinstance(address, tuple) and len(address) >= 2:
            return address[1]
    return None


def run_server_sync(config: ServerConfig) -> None:
    """Run the server until SIGINT/SIGTERM.

    Raises:
        ServerBindFailed: The server could not start.
    """
    server = StaticServer(config)
    loop = asyncio.new_event_loop()

    async def run():
        await server.start()
        stop_event = asyncio.Event()
        running_loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                running_loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                pass  # Windows: KeyboardInterrupt below
        await stop_event.wait()
        logger.info("Shutdown signal received, stopping...")
        await server.stop()

    try:
        loop.run_until_complete(run())
    except KeyboardInterrupt:
        loop.run_until_complete(server.stop())
    finally:
        loop.close()
