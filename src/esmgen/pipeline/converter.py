"""Conversion pipeline: registry package in, ES module bundle out.

Stages run strictly in sequence for one package:

    resolve -> download + extract -> locate root -> resolve entry
            -> bundle -> copy assets -> update manifest

A batch converts packages one at a time in the order given; each package
succeeds or fails on its own.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

from esmgen.config import EsmgenConfig
from esmgen.common.logging_utils import extra_context, is_debug_enabled, Timer
from esmgen.errors import AssetCopyFailed, DownloadFailed, EsmgenError
from esmgen.manifest import Manifest
from esmgen.models import ConversionOutput, ConversionResult, PackageRequest, ResolvedVersion
from esmgen.pipeline.assets import copy_assets
from esmgen.pipeline.bundler import EsbuildBundler
from esmgen.pipeline.entry import resolve_entry
from esmgen.pipeline.fetcher import download_archive
from esmgen.pipeline.root_locator import find_package_root
from esmgen.registry.npm import NpmMetadataResolver

logger = logging.getLogger(__name__)

STAGING_PREFIX = ".esmgen-staging-"


def output_dir_for(output_root: str, resolved: ResolvedVersion) -> str:
    """``<output_root>/<name>@<version>``; scoped names nest under their scope."""
    return os.path.join(output_root, *resolved.label.split("/"))


class PackageConverter:
    """Drive the pipeline stages for one project."""

    def __init__(
        self,
        config: EsmgenConfig,
        *,
        resolver: Optional[NpmMetadataResolver] = None,
        bundler: Optional[EsbuildBundler] = None,
        manifest: Optional[Manifest] = None,
    ):
        """Initialize the converter.

        Args:
            config: Effective configuration.
            resolver: Metadata resolver; built from config when omitted.
            bundler: Bundler driver; built from config when omitted.
            manifest: Project manifest; built from config when omitted.
        """
        self._config = config
        self._resolver = resolver or NpmMetadataResolver(config.registry, timeout=config.request_timeout)
        self._bundler = bundler or EsbuildBundler(config.bundle_options())
        self._manifest = manifest or Manifest(config.project_root)

    @property
    def manifest(self) -> Manifest:
        return self._manifest

    def convert(self, request: PackageRequest) -> ConversionOutput:
        """Convert one package.

        Raises:
            EsmgenError: The failing stage's error, cause attached.
        """
        logger.info("Processing %s", request.label)
        resolved = self._resolver.resolve(request)
        return self.convert_resolved(resolved)

    def convert_resolved(self, resolved: ResolvedVersion) -> ConversionOutput:
        """Run every stage after metadata resolution.

        Bundle and assets are built in a staging directory beside the output
        directory and swapped into place only when every stage succeeded, so
        a failed conversion leaves any previous output untouched.
        """
        label = resolved.label
        config = self._config
        output_dir = output_dir_for(config.output_root, resolved)

        with Timer() as t, _scratch_dir(resolved, config.scratch_root) as scratch:
            logger.info("Downloading package: %s...", label)
            download_archive(resolved, scratch, timeout=config.request_timeout)

            logger.info("Identifying extracted directory structure...")
            package = _with_label(label, find_package_root, scratch)

            entry = _with_label(label, resolve_entry, package.root_path, strict=config.strict_entry)

            output = ConversionOutput(output_dir=output_dir)
            with _staging_dir(output_dir, label) as staging:
                if entry.found:
                    logger.info("Converting to ESM modules...")
                    bundle_file = self._bundler.bundle(
                        entry.chosen_path, staging, working_dir=package.root_path, label=label
                    )
                    output.bundle_file = os.path.join(output_dir, os.path.basename(bundle_file))
                    boundary = os.path.dirname(entry.chosen_path)
                else:
                    logger.warning("No entry point found for %s; copying assets only", label)
                    boundary = package.root_path

                report = _with_label(
                    label, copy_assets, package.root_path, staging, boundary, config.asset_mode
                )
                output.copied_assets = report.copied
                output.excluded_assets = report.excluded
                _replace_dir(staging, output_dir, label)
        _with_label(label, self._manifest.add, resolved.name, resolved.concrete_version)

        if is_debug_enabled(logger):
            logger.debug(
                "Conversion finished",
                extra=extra_context(
                    event="function_exit",
                    component="converter",
                    action="convert",
                    outcome="success",
                    target=label,
                    duration_ms=t.duration_ms(),
                ),
            )
        logger.info("Output directory: %s", output_dir)
        return output

    def convert_many(self, requests: Iterable[PackageRequest]) -> List[ConversionResult]:
        """Convert packages one at a time, collecting every outcome."""
        results = []
        for request in requests:
            result = ConversionResult(request=request)
            try:
                result.resolved = self._resolver.resolve(request)
                logger.info("Processing %s", result.resolved.label)
                result.output = self.convert_resolved(result.resolved)
            except EsmgenError as exc:
                logger.error("Failed to convert %s: %s", request.label, exc)
                result.error = exc
            results.append(result)
        return results

    def remove(self, name: str) -> Optional[str]:
        """Forget ``name``: drop its manifest entry and output directory.

        Returns:
            The removed version, or None when the manifest did not list it.
        """
        version = self._manifest.packages().get(name)
        if version is not None:
            resolved = ResolvedVersion(name=name, concrete_version=version, archive_url="")
            output_dir = output_dir_for(self._config.output_root, resolved)
            if os.path.isdir(output_dir):
                shutil.rmtree(output_dir)
                logger.info("Removed %s", output_dir)
        self._manifest.remove(name)
        return version


@contextmanager
def _scratch_dir(resolved: ResolvedVersion, scratch_root: str) -> Iterator[str]:
    """Temporary download directory, removed when the conversion ends."""
    prefix = resolved.label.replace("/", "__") + "-"
    try:
        os.makedirs(scratch_root, exist_ok=True)
        scratch = tempfile.TemporaryDirectory(prefix=prefix, dir=scratch_root, ignore_cleanup_errors=True)
    except OSError as exc:
        raise DownloadFailed(
            f"cannot create scratch directory in {scratch_root}: {exc}", package=resolved.label, cause=exc
        ) from exc
    with scratch as path:
        yield path


@contextmanager
def _staging_dir(output_dir: str, label: str) -> Iterator[str]:
    """Hidden work directory beside ``output_dir``; removed unless swapped in."""
    parent = os.path.dirname(output_dir)
    try:
        os.makedirs(parent, exist_ok=True)
        staging = tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=parent)
        os.chmod(staging, 0o755)
    except OSError as exc:
        raise AssetCopyFailed(f"cannot prepare output directory {parent}: {exc}", package=label, cause=exc) from exc
    try:
        yield staging
    finally:
        if os.path.isdir(staging):
            shutil.rmtree(staging, ignore_errors=True)


def _replace_dir(staging: str, output_dir: str, label: str) -> None:
    """Move ``staging`` to ``output_dir``, dropping any previous output."""
    previous = None
    try:
        if os.path.isdir(output_dir):
            previous = f"{staging}.previous"
            os.replace(output_dir, previous)
        os.replace(staging, output_dir)
    except OSError as exc:
        if previous is not None and not os.path.exists(output_dir):
            os.replace(previous, output_dir)
            previous = None
        raise AssetCopyFailed(f"cannot install output directory {output_dir}: {exc}", package=label, cause=exc) from exc
    finally:
        if previous is not None and os.path.isdir(previous):
            shutil.rmtree(previous, ignore_errors=True)


def _with_label(label: str, func, *args, **kwargs):
    """Call ``func`` and tag any pipeline error with the package label."""
    try:
        return func(*args, **kwargs)
    except EsmgenError as exc:
        if exc.package is None:
            exc.package = label
        raise
