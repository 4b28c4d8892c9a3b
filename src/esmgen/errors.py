"""Error taxonomy for the conversion pipeline and the static server.

Every failure carries the pipeline stage it came from and, where there is
one, the underlying exception. Callers decide what is fatal; library code
only raises.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional


class Stage(Enum):
    """Pipeline stage that produced an error."""

    CONFIG = "config"
    METADATA = "metadata"
    DOWNLOAD = "download"
    EXTRACT = "extract"
    ROOT = "root"
    ENTRY = "entry"
    BUNDLE = "bundle"
    ASSETS = "assets"
    MANIFEST = "manifest"
    SERVE = "serve"


class EsmgenError(Exception):
    """Base class for all esmgen failures."""

    stage: Stage = Stage.CONFIG

    def __init__(
        self,
        message: str,
        *,
        package: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.package = package
        self.cause = cause

    def __str__(self) -> str:
        label = f" {self.package}:" if self.package else ""
        return f"[{self.stage.value}]{label} {self.message}"


class ConfigError(EsmgenError):
    """Invalid or unreadable configuration."""

    stage = Stage.CONFIG


class RegistryUnavailable(EsmgenError):
    """The registry could not be reached or answered with an error."""

    stage = Stage.METADATA


class VersionNotFound(EsmgenError):
    """The registry has no release record for the requested version."""

    stage = Stage.METADATA


class DownloadFailed(EsmgenError):
    """The archive could not be transferred."""

    stage = Stage.DOWNLOAD


class ExtractionFailed(EsmgenError):
    """The archive stream was corrupt or unsafe to extract."""

    stage = Stage.EXTRACT


class RootNotFound(EsmgenError):
    """No directory holding a package descriptor was found."""

    stage = Stage.ROOT


class EntryNotFound(EsmgenError):
    """No entry file resolved while an entry was mandatory."""

    stage = Stage.ENTRY


class BundleFailed(EsmgenError):
    """The bundler rejected the module graph."""

    stage = Stage.BUNDLE

    def __init__(
        self,
        message: str,
        *,
        diagnostics: str = "",
        package: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, package=package, cause=cause)
        self.diagnostics = diagnostics

    @property
    def error_lines(self) -> List[str]:
        """Return the bundler's error lines, without surrounding context."""
        lines = []
        for line in self.diagnostics.splitlines():
            text = line.strip()
            if "[ERROR]" in text or text.startswith("error:"):
                lines.append(text)
        return lines


class AssetCopyFailed(EsmgenError):
    """An allow-listed asset could not be copied."""

    stage = Stage.ASSETS


class ManifestReadFailed(EsmgenError):
    """The manifest exists but is not a valid document."""

    stage = Stage.MANIFEST


class ManifestWriteFailed(EsmgenError):
    """The manifest could not be rewritten."""

    stage = Stage.MANIFEST


class ServerBindFailed(EsmgenError):
    """The static server could not bind a listening socket."""

    stage = Stage.SERVE
