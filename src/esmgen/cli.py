"""Command-line entry point for esmgen.

Library code raises; this module turns outcomes into log lines and exit
codes.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict, List, Optional

from esmgen.args import build_parser
from esmgen.config import EsmgenConfig, load_config
from esmgen.constants import ExitCodes
from esmgen.common.logging_utils import add_file_handler, configure_logging
from esmgen.errors import (
    ConfigError,
    DownloadFailed,
    EsmgenError,
    ManifestReadFailed,
    ManifestWriteFailed,
    RegistryUnavailable,
    ServerBindFailed,
)
from esmgen.models import ConversionResult, PackageRequest

logger = logging.getLogger(__name__)

# CLI dest -> EsmgenConfig field
_OVERRIDES = {
    "REGISTRY": "registry",
    "DIR": "output_dir",
    "HOST": "host",
    "PORT": "port",
    "ENTRY_FILE": "entry_file",
    "MAX_PORT_ATTEMPTS": "max_port_attempts",
    "MINIFY": "minify",
    "TRANSPILE_TYPESCRIPT": "transpile_typescript",
    "INCLUDE_ALL_ASSETS": "include_all_assets",
    "STRICT_ENTRY": "strict_entry",
    "ESBUILD": "esbuild",
}


def _setup_logging(args: Any) -> None:
    configure_logging(getattr(args, "LOG_LEVEL", None))
    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        add_file_handler(log_file)
        logger.info("Logging to file: %s", log_file)


def config_from_args(args: Any) -> EsmgenConfig:
    """Build the effective configuration from parsed arguments."""
    overrides: Dict[str, Any] = {}
    for dest, field_name in _OVERRIDES.items():
        value = getattr(args, dest, None)
        if value is not None:
            overrides[field_name] = value
    return load_config(
        project_root=getattr(args, "PROJECT_ROOT", None),
        config_path=getattr(args, "CONFIG", None),
        overrides=overrides,
    )


def exit_code_for(error: EsmgenError) -> int:
    """Map an error to the process exit code."""
    if isinstance(error, (RegistryUnavailable, DownloadFailed)):
        return ExitCodes.CONNECTION_ERROR.value
    if isinstance(error, (ConfigError, ManifestReadFailed, ManifestWriteFailed)):
        return ExitCodes.FILE_ERROR.value
    if isinstance(error, ServerBindFailed):
        return ExitCodes.SERVER_ERROR.value
    return ExitCodes.CONVERSION_ERROR.value


def _report(result: ConversionResult) -> None:
    if not result.ok:
        error = result.error
        logger.error("%s failed at %s: %s", result.request.label, error.stage.value, error.message)
        if getattr(error, "diagnostics", ""):
            logger.debug("Bundler diagnostics:\n%s", error.diagnostics)
        return
    output = result.output
    logger.info("%s -> %s", result.resolved.label, output.output_dir)
    if output.bundle_file is None:
        logger.info("No entry point: %s was converted as an assets-only package", result.resolved.label)
    for rel in output.excluded_assets:
        logger.info("Excluded asset (outside entry directory): %s", rel)


def _serve(config: EsmgenConfig) -> int:
    from esmgen.server.static import ServerConfig, run_server_sync  # pylint: disable=import-outside-toplevel

    server_config = ServerConfig.from_config(config)
    logger.info("Serving from directory: %s", server_config.root_dir)
    run_server_sync(server_config)
    return ExitCodes.SUCCESS.value


def _convert(config: EsmgenConfig, requests: List[PackageRequest]) -> int:
    from esmgen.pipeline.converter import PackageConverter  # pylint: disable=import-outside-toplevel

    converter = PackageConverter(config)
    logger.info("Converted output directory: %s", config.output_root)
    results = converter.convert_many(requests)
    for result in results:
        _report(result)
    failures = [r for r in results if not r.ok]
    if failures:
        logger.error("%d of %d package(s) failed", len(failures), len(results))
        return max(exit_code_for(r.error) for r in failures)
    return ExitCodes.SUCCESS.value


def run_download(args: Any, config: EsmgenConfig) -> int:
    if not args.PACKAGE:
        logger.error("Package name is required.")
        return ExitCodes.FILE_ERROR.value
    code = _convert(config, [PackageRequest(args.PACKAGE, args.VERSION or "latest")])
    if code == ExitCodes.SUCCESS.value and args.SERVE:
        return _serve(config)
    return code


def run_install(args: Any, config: EsmgenConfig) -> int:
    from esmgen.manifest import Manifest  # pylint: disable=import-outside-toplevel

    manifest = Manifest(config.project_root)
    packages = manifest.packages()
    if not packages:
        logger.warning("No packages listed in %s", manifest.path)
        return ExitCodes.SUCCESS.value
    return _convert(config, [PackageRequest(name, version) for name, version in packages.items()])


def run_remove(args: Any, config: EsmgenConfig) -> int:
    from esmgen.pipeline.converter import PackageConverter  # pylint: disable=import-outside-toplevel

    version = PackageConverter(config).remove(args.PACKAGE)
    if version is None:
        logger.warning("%s is not listed in the manifest", args.PACKAGE)
    else:
        logger.info("Removed %s@%s", args.PACKAGE, version)
    return ExitCodes.SUCCESS.value


def run_init(args: Any, config: EsmgenConfig) -> int:
    from esmgen.manifest import Manifest  # pylint: disable=import-outside-toplevel

    manifest = Manifest(config.project_root)
    if not manifest.create():
        logger.info("Manifest already exists: %s", manifest.path)
    return ExitCodes.SUCCESS.value


_COMMANDS = {
    "download": run_download,
    "install": run_install,
    "serve": lambda args, config: _serve(config),
    "remove": run_remove,
    "init": run_init,
}


def run(argv: Optional[List[str]] = None) -> int:
    """Parse ``argv``, run the command and return the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "action", None):
        parser.print_help()
        return ExitCodes.FILE_ERROR.value

    _setup_logging(args)
    try:
        config = config_from_args(args)
        return _COMMANDS[args.action](args, config)
    except EsmgenError as exc:
        logger.error("%s", exc)
        return exit_code_for(exc)
    except OSError as exc:
        logger.error("File system error: %s", exc)
        return ExitCodes.FILE_ERROR.value


def main() -> None:
    """Main function of the program."""
    sys.exit(run())
