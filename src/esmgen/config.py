"""Runtime configuration.

Settings are layered, highest precedence first:

1. CLI flags
2. ``ESMGEN_*`` environment variables
3. a config file (``--config`` or ``esmgen.yml`` in the project root)
4. built-in defaults
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional

import yaml

from esmgen.constants import Constants
from esmgen.errors import ConfigError
from esmgen.models import AssetMode
from esmgen.pipeline.bundler import BundleOptions

logger = logging.getLogger(__name__)

ENV_VARS = {
    "ESMGEN_REGISTRY": "registry",
    "ESMGEN_DIR": "output_dir",
    "ESMGEN_HOST": "host",
    "ESMGEN_PORT": "port",
    "ESMGEN_ESBUILD": "esbuild",
    "ESMGEN_MINIFY": "minify",
    "ESMGEN_REQUEST_TIMEOUT": "request_timeout",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass
class EsmgenConfig:
    """Settings for conversion and serving."""

    project_root: str = "."
    registry: str = Constants.REGISTRY_URL_NPM
    output_dir: str = Constants.DEFAULT_DIR
    download_dir: Optional[str] = None
    host: str = Constants.DEFAULT_HOST
    port: int = Constants.DEFAULT_PORT
    entry_file: Optional[str] = None
    minify: bool = False
    transpile_typescript: bool = True
    include_all_assets: bool = False
    strict_entry: bool = False
    esbuild: str = Constants.ESBUILD_EXECUTABLE
    request_timeout: float = Constants.REQUEST_TIMEOUT
    max_port_attempts: Optional[int] = None

    @property
    def output_root(self) -> str:
        """Absolute output directory; relative paths hang off the project root."""
        return os.path.abspath(os.path.join(self.project_root, self.output_dir))

    @property
    def scratch_root(self) -> str:
        """Parent directory for per-conversion download scratch space."""
        return self.download_dir or os.path.join(tempfile.gettempdir(), Constants.DOWNLOAD_DIR_NAME)

    @property
    def asset_mode(self) -> AssetMode:
        return AssetMode.INCLUDE_ALL if self.include_all_assets else AssetMode.ENTRY_SCOPED

    def bundle_options(self) -> BundleOptions:
        return BundleOptions(
            minify=self.minify,
            transpile_typescript=self.transpile_typescript,
            esbuild=self.esbuild,
        )

    def apply(self, values: Mapping[str, Any], source: str) -> None:
        """Overlay ``values`` onto this config, coercing to field types.

        Unknown keys are ignored with a warning; ``None`` values are skipped.

        Raises:
            ConfigError: A value cannot be coerced.
        """
        known = {f.name: f for f in fields(self)}
        for key, value in values.items():
            name = key.replace("-", "_")
            if name not in known:
                logger.warning("Ignoring unknown setting '%s' from %s", key, source)
                continue
            if value is None:
                continue
            setattr(self, name, _coerce(name, value, getattr(self, name), source))


def _coerce(name: str, value: Any, current: Any, source: str) -> Any:
    try:
        if name in ("minify", "transpile_typescript", "include_all_assets", "strict_entry"):
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(f"not a boolean: {value!r}")
        if name in ("port", "max_port_attempts"):
            number = int(value)
            if number < 0:
                raise ValueError(f"must not be negative: {value!r}")
            return number
        if name == "request_timeout":
            return float(value)
        if current is None or isinstance(current, str):
            return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid value for '{name}' from {source}: {exc}", cause=exc) from exc
    return value


def load_config_file(path: str) -> Dict[str, Any]:
    """Read a YAML or JSON settings file.

    Settings may sit at the top level or under an ``esmgen`` section.

    Raises:
        ConfigError: The file cannot be read or parsed.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            if path.lower().endswith(".json"):
                data = json.load(fh)
            else:
                data = yaml.safe_load(fh)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot load config {path}: {exc}", cause=exc) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config {path} must be a mapping")
    section = data.get("esmgen", data)
    return section if isinstance(section, dict) else {}


def find_config_file(project_root: str) -> Optional[str]:
    """Return the first default config file present in ``project_root``."""
    for name in Constants.CONFIG_FILES:
        candidate = os.path.join(project_root, name)
        if os.path.isfile(candidate):
            return candidate
    return None


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    return {attr: environ[var] for var, attr in ENV_VARS.items() if var in environ}


def load_config(
    project_root: Optional[str] = None,
    config_path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> EsmgenConfig:
    """Build the effective configuration.

    Args:
        project_root: Project directory; defaults to the current directory.
        config_path: Explicit settings file; must exist when given.
        overrides: CLI values; ``None`` entries mean "not given".
        environ: Environment mapping; defaults to ``os.environ``.

    Raises:
        ConfigError: Missing explicit file or invalid values.
    """
    root = os.path.abspath(project_root or os.getcwd())
    config = EsmgenConfig(project_root=root)

    if config_path:
        if not os.path.isfile(config_path):
            raise ConfigError(f"config file not found: {config_path}")
        path = config_path
    else:
        path = find_config_file(root)
    if path:
        config.apply(load_config_file(path), source=path)
        logger.debug("Loaded config from %s", path)

    config.apply(env_overrides(environ), source="environment")
    if overrides:
        config.apply(overrides, source="command line")
    config.project_root = root
    return config
