"""NPM registry metadata resolver.

Turns a package name and a version selector into a concrete published
version and its tarball URL. The lookup order is:

1. an exact key of the package document's ``versions`` table;
2. a distribution tag (``latest``, ``next``, ...);
3. an npm semver range, resolved to the highest matching release.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
import semantic_version

from esmgen.constants import Constants
from esmgen.common.http_client import safe_get
from esmgen.common.logging_utils import extra_context, is_debug_enabled
from esmgen.errors import RegistryUnavailable, VersionNotFound
from esmgen.models import PackageRequest, ResolvedVersion

logger = logging.getLogger(__name__)


def package_url(registry: str, name: str) -> str:
    """Build the package document URL; scoped names keep their ``@``."""
    base = registry if registry.endswith("/") else registry + "/"
    return base + quote(name, safe="@")


class NpmMetadataResolver:
    """Resolve package requests against an npm-compatible registry."""

    def __init__(self, registry: str = Constants.REGISTRY_URL_NPM, timeout: Optional[float] = None):
        """Initialize the resolver.

        Args:
            registry: Registry base URL.
            timeout: Per-request timeout in seconds.
        """
        self._registry = registry
        self._timeout = timeout

    @property
    def registry(self) -> str:
        return self._registry

    def fetch_document(self, name: str) -> Dict[str, Any]:
        """Fetch the full package document (packument).

        Raises:
            VersionNotFound: The registry does not know the package (404).
            RegistryUnavailable: Network failure, non-2xx status or invalid JSON.
        """
        url = package_url(self._registry, name)
        try:
            res = safe_get(url, context="registry", timeout=self._timeout, headers={"Accept": "application/json"})
        except requests.RequestException as exc:
            raise RegistryUnavailable(f"registry unreachable: {exc}", package=name, cause=exc) from exc

        if res.status_code == 404:
            raise VersionNotFound(f"package {name} not found in registry", package=name)
        if not 200 <= res.status_code < 300:
            raise RegistryUnavailable(
                f"registry answered HTTP {res.status_code} for {name}", package=name
            )
        try:
            document = json.loads(res.text)
        except json.JSONDecodeError as exc:
            raise RegistryUnavailable(
                f"registry returned invalid JSON for {name}", package=name, cause=exc
            ) from exc
        if not isinstance(document, dict):
            raise RegistryUnavailable(f"unexpected package document for {name}", package=name)
        return document

    def resolve(self, request: PackageRequest) -> ResolvedVersion:
        """Pin ``request`` to a published version.

        Raises:
            VersionNotFound: No release record matches the selector.
            RegistryUnavailable: The package document could not be fetched.
        """
        document = self.fetch_document(request.name)
        return resolve_from_document(request, document)


def resolve_from_document(request: PackageRequest, document: Dict[str, Any]) -> ResolvedVersion:
    """Resolve ``request`` against an already fetched package document."""
    versions = document.get("versions") or {}
    dist_tags = document.get("dist-tags") or {}
    selector = (request.version_selector or Constants.LATEST_TAG).strip()

    concrete = _select_version(selector, versions, dist_tags)
    release = versions.get(concrete) if concrete else None
    if not isinstance(release, dict):
        raise VersionNotFound(
            f"Version {selector} not found for package {request.name}", package=request.name
        )

    tarball = (release.get("dist") or {}).get("tarball")
    if not tarball:
        raise VersionNotFound(
            f"release {request.name}@{concrete} has no tarball", package=request.name
        )

    if is_debug_enabled(logger):
        logger.debug(
            "Resolved version",
            extra=extra_context(
                event="decision",
                component="registry",
                action="resolve",
                target=request.name,
                outcome=concrete,
                selector=selector,
            ),
        )
    return ResolvedVersion(
        name=request.name,
        concrete_version=concrete,
        archive_url=tarball,
        release=release,
    )


def _select_version(selector: str, versions: Dict[str, Any], dist_tags: Dict[str, Any]) -> Optional[str]:
    if selector in versions:
        return selector
    if selector in dist_tags:
        return dist_tags[selector]
    if selector == Constants.LATEST_TAG:
        return None
    return _highest_matching(selector, list(versions.keys()))


def _highest_matching(spec_str: str, candidates: List[str]) -> Optional[str]:
    """Apply an npm range and pick the highest matching stable version."""
    try:
        npm_spec = semantic_version.NpmSpec(spec_str)
    except ValueError:
        return None

    matching = []
    for candidate in candidates:
        try:
            ver = semantic_version.Version(candidate)
        except ValueError:
            continue  # Skip invalid versions
        if npm_spec.match(ver):
            matching.append((ver, candidate))
    if not matching:
        return None
    return max(matching)[1]
