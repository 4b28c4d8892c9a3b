"""Module bundler driver.

Runs the ``esbuild`` executable to flatten a package's module graph into a
single browser-ready ES module. esbuild converts CommonJS to ESM, transpiles
TypeScript and fails on any import it cannot resolve. Modules it pulled in
from outside the package root are rejected after the build, which keeps
the output self-contained.
"""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Callable, List, Optional

from esmgen.constants import Constants
from esmgen.common.logging_utils import extra_context, is_debug_enabled, Timer
from esmgen.errors import BundleFailed

logger = logging.getLogger(__name__)

_NAMESPACE_RE = re.compile(r"^\(?[A-Za-z-]+\)?:(?![\\/])")


@dataclass
class BundleOptions:
    """Bundling switches."""

    minify: bool = False
    transpile_typescript: bool = True
    esbuild: str = Constants.ESBUILD_EXECUTABLE
    platform: str = "browser"
    target: Optional[str] = None
    timeout: Optional[float] = None


def is_typescript(path: str) -> bool:
    return path.lower().endswith(Constants.TYPESCRIPT_EXTENSIONS)


class EsbuildBundler:
    """Bundle an entry file into ``<output_dir>/bundle.js``."""

    def __init__(self, options: Optional[BundleOptions] = None, runner: Optional[Callable[..., subprocess.CompletedProcess]] = None):
        """Initialize the bundler.

        Args:
            options: Bundling switches.
            runner: ``subprocess.run`` compatible callable.
        """
        self._options = options or BundleOptions()
        self._runner = runner or subprocess.run

    @property
    def options(self) -> BundleOptions:
        return self._options

    def build_command(self, entry: str, outfile: str, metafile: Optional[str] = None) -> List[str]:
        """Return the esbuild argument vector for ``entry``."""
        opts = self._options
        cmd = [
            opts.esbuild,
            entry,
            "--bundle",
            "--format=esm",
            f"--platform={opts.platform}",
            f"--outfile={outfile}",
            "--log-level=error",
        ]
        if metafile:
            cmd.append(f"--metafile={metafile}")
        if opts.minify:
            cmd.append("--minify")
        if opts.target:
            cmd.append(f"--target={opts.target}")
        return cmd

    def bundle(self, entry: str, output_dir: str, *, working_dir: Optional[str] = None, label: Optional[str] = None) -> str:
        """Bundle ``entry`` and return the path of the written bundle.

        Every module pulled into the bundle must live under ``working_dir``.
        esbuild also resolves bare imports through ``node_modules``
        directories above the package, so its metafile is checked after a
        successful build.

        Args:
            entry: Entry file path.
            output_dir: Directory receiving ``bundle.js``.
            working_dir: Package root; esbuild resolves relative to it.
            label: Package label used in errors and logs.

        Raises:
            BundleFailed: Graph resolution or syntax error, an import
                resolved outside the package, an executable that cannot be
                launched, or no output written. The compiler's own output is
                kept in ``diagnostics``.
        """
        if is_typescript(entry) and not self._options.transpile_typescript:
            raise BundleFailed(
                f"entry {os.path.basename(entry)} is TypeScript and transpilation is disabled",
                package=label,
            )

        outfile = os.path.join(output_dir, Constants.BUNDLE_FILE)
        cwd = working_dir or os.path.dirname(entry)

        with tempfile.TemporaryDirectory(prefix="esmgen-meta-") as meta_dir:
            metafile = os.path.join(meta_dir, "meta.json")
            cmd = self.build_command(entry, outfile, metafile)

            if is_debug_enabled(logger):
                logger.debug(
                    "Bundler invocation",
                    extra=extra_context(
                        event="subprocess",
                        component="bundler",
                        action="run",
                        target=label,
                        command=" ".join(cmd),
                    ),
                )

            with Timer() as t:
                result = self._run(cmd, cwd, label)

            diagnostics = _text(result.stderr)
            if result.returncode != 0:
                error = BundleFailed(
                    f"bundler exited with status {result.returncode}",
                    diagnostics=diagnostics,
                    package=label,
                )
                summary = "; ".join(error.error_lines) or diagnostics.strip()
                if summary:
                    error.message = f"{error.message}: {summary}"
                raise error
            if not os.path.isfile(outfile):
                raise BundleFailed("bundler reported success but wrote no output", diagnostics=diagnostics, package=label)

            outside = inputs_outside(metafile, cwd, label)
            if outside:
                os.remove(outfile)
                raise BundleFailed(
                    "imports resolved outside the package: " + ", ".join(outside),
                    diagnostics=diagnostics,
                    package=label,
                )

        if diagnostics.strip():
            logger.warning("Bundler output for %s:\n%s", label or entry, diagnostics.strip())
        logger.info("Converted to ESM at: %s (%.0f ms)", outfile, t.duration_ms())
        return outfile

    def _run(self, cmd: List[str], cwd: str, label: Optional[str]) -> subprocess.CompletedProcess:
        # NODE_PATH would let esbuild resolve bare imports from outside the package.
        env = {key: value for key, value in os.environ.items() if key != "NODE_PATH"}
        try:
            return self._runner(
                cmd,
                cwd=cwd,
                env=env,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=self._options.timeout,
            )
        except FileNotFoundError as exc:
            raise BundleFailed(
                f"bundler executable not found: {self._options.esbuild}",
                package=label,
                cause=exc,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise BundleFailed(
                f"bundler timed out after {self._options.timeout} seconds",
                diagnostics=_text(exc.stderr),
                package=label,
                cause=exc,
            ) from exc
        except OSError as exc:
            raise BundleFailed(
                f"cannot run bundler {self._options.esbuild}: {exc}",
                package=label,
                cause=exc,
            ) from exc


def inputs_outside(metafile: str, root: str, label: Optional[str] = None) -> List[str]:
    """Return metafile inputs that do not live under ``root``.

    Input keys are relative to the bundler's working directory. Namespaced
    keys such as ``(disabled):fs`` are not files and are skipped.

    Raises:
        BundleFailed: The metafile is missing or unreadable.
    """
    try:
        with open(metafile, "r", encoding="utf-8") as fh:
            meta = json.load(fh)
    except (OSError, ValueError) as exc:
        raise BundleFailed(f"cannot read bundler metafile: {exc}", package=label, cause=exc) from exc

    boundary = os.path.realpath(root)
    outside = []
    for key in (meta.get("inputs") or {}) if isinstance(meta, dict) else {}:
        if _NAMESPACE_RE.match(key):
            continue
        path = os.path.realpath(os.path.join(root, key))
        if path != boundary and not path.startswith(boundary.rstrip(os.sep) + os.sep):
            outside.append(key)
    return outside


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
