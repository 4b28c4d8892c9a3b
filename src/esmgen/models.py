"""Data models shared by the conversion pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from esmgen.constants import Constants
from esmgen.errors import EsmgenError


class AssetMode(Enum):
    """Which allow-listed assets travel with a bundle."""

    ENTRY_SCOPED = "entry-scoped"
    INCLUDE_ALL = "all"


@dataclass(frozen=True)
class PackageRequest:
    """A package name and a version selector ("latest", a tag, exact or range)."""

    name: str
    version_selector: str = Constants.LATEST_TAG

    @property
    def label(self) -> str:
        """Return ``name@selector`` for logs."""
        return f"{self.name}@{self.version_selector}"


@dataclass(frozen=True)
class ResolvedVersion:
    """A request pinned to a published version and its tarball."""

    name: str
    concrete_version: str
    archive_url: str
    release: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def label(self) -> str:
        """Return ``name@version``; also the output directory name."""
        return f"{self.name}@{self.concrete_version}"


@dataclass(frozen=True)
class ExtractedPackage:
    """Root of an extracted archive; always holds a package descriptor."""

    root_path: str

    @property
    def descriptor_path(self) -> str:
        """Path of the package descriptor file."""
        return os.path.join(self.root_path, Constants.PACKAGE_JSON_FILE)


@dataclass(frozen=True)
class EntryResolution:
    """Outcome of entry point resolution.

    ``chosen_path`` is None for packages that ship no executable entry.
    ``rule`` names the rule that produced the path.
    """

    chosen_path: Optional[str] = None
    rule: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.chosen_path is not None


@dataclass
class ConversionOutput:
    """Files produced for one converted package."""

    output_dir: str
    bundle_file: Optional[str] = None
    copied_assets: List[str] = field(default_factory=list)
    excluded_assets: List[str] = field(default_factory=list)


@dataclass
class ConversionResult:
    """Independent outcome of one package in a batch."""

    request: PackageRequest
    resolved: Optional[ResolvedVersion] = None
    output: Optional[ConversionOutput] = None
    error: Optional[EsmgenError] = None

    @property
    def ok(self) -> bool:
        return self.error is None
