"""Tests for the npm metadata resolver."""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from esmgen.errors import RegistryUnavailable, VersionNotFound
from esmgen.models import PackageRequest
from esmgen.registry.npm import NpmMetadataResolver, package_url, resolve_from_document


def _document():
    versions = {}
    for ver in ("1.0.0", "1.1.0", "1.3.0", "2.0.0-beta.1"):
        versions[ver] = {
            "name": "left-pad",
            "version": ver,
            "main": "index.js",
            "dist": {"tarball": f"https://registry.example/left-pad/-/left-pad-{ver}.tgz"},
        }
    return {
        "name": "left-pad",
        "dist-tags": {"latest": "1.3.0", "next": "2.0.0-beta.1"},
        "versions": versions,
    }


def _response(status=200, body=None):
    res = MagicMock()
    res.status_code = status
    res.text = json.dumps(body) if body is not None else ""
    return res


class TestResolveFromDocument:
    """Version selection against a package document."""

    def test_latest_resolves_through_dist_tags(self):
        """'latest' maps to the dist-tag's concrete version."""
        resolved = resolve_from_document(PackageRequest("left-pad", "latest"), _document())
        assert resolved.concrete_version == "1.3.0"
        assert resolved.archive_url.endswith("left-pad-1.3.0.tgz")
        assert resolved.label == "left-pad@1.3.0"

    @pytest.mark.parametrize("version", ["1.0.0", "1.1.0", "1.3.0", "2.0.0-beta.1"])
    def test_exact_versions_round_trip(self, version):
        """Every key of the versions table resolves to itself."""
        resolved = resolve_from_document(PackageRequest("left-pad", version), _document())
        assert resolved.concrete_version == version

    def test_other_dist_tag(self):
        """Non-latest tags resolve through the same table."""
        resolved = resolve_from_document(PackageRequest("left-pad", "next"), _document())
        assert resolved.concrete_version == "2.0.0-beta.1"

    def test_semver_range_picks_highest_stable(self):
        """Ranges resolve to the highest matching release, skipping prereleases."""
        resolved = resolve_from_document(PackageRequest("left-pad", "^1.0.0"), _document())
        assert resolved.concrete_version == "1.3.0"

        resolved = resolve_from_document(PackageRequest("left-pad", "~1.1.0"), _document())
        assert resolved.concrete_version == "1.1.0"

    def test_missing_version_raises_version_not_found(self):
        """Unknown versions are VersionNotFound, not a network error."""
        with pytest.raises(VersionNotFound) as info:
            resolve_from_document(PackageRequest("left-pad", "9.9.9"), _document())
        assert "9.9.9" in str(info.value)

    def test_latest_tag_pointing_nowhere(self):
        """A dangling latest tag is VersionNotFound."""
        doc = _document()
        doc["dist-tags"]["latest"] = "3.0.0"
        with pytest.raises(VersionNotFound):
            resolve_from_document(PackageRequest("left-pad", "latest"), doc)

    def test_missing_latest_tag(self):
        doc = _document()
        doc["dist-tags"] = {}
        with pytest.raises(VersionNotFound):
            resolve_from_document(PackageRequest("left-pad", "latest"), doc)

    def test_release_without_tarball(self):
        doc = _document()
        doc["versions"]["1.3.0"]["dist"] = {}
        with pytest.raises(VersionNotFound):
            resolve_from_document(PackageRequest("left-pad", "1.3.0"), doc)


class TestPackageUrl:
    """Registry URL construction."""

    def test_plain_name(self):
        assert package_url("https://registry.npmjs.org/", "left-pad") == "https://registry.npmjs.org/left-pad"

    def test_adds_missing_slash(self):
        assert package_url("http://localhost:4873", "left-pad") == "http://localhost:4873/left-pad"

    def test_scoped_name_is_encoded(self):
        assert package_url("https://registry.npmjs.org/", "@babel/core") == "https://registry.npmjs.org/@babel%2Fcore"


class TestNpmMetadataResolver:
    """Resolver behaviour around the HTTP layer."""

    @patch("esmgen.registry.npm.safe_get")
    def test_resolve_fetches_document(self, mock_safe_get):
        mock_safe_get.return_value = _response(200, _document())
        resolver = NpmMetadataResolver("https://registry.example/")

        resolved = resolver.resolve(PackageRequest("left-pad"))

        assert resolved.concrete_version == "1.3.0"
        assert mock_safe_get.call_args[0][0] == "https://registry.example/left-pad"

    @patch("esmgen.registry.npm.safe_get")
    def test_unknown_package_is_version_not_found(self, mock_safe_get):
        mock_safe_get.return_value = _response(404, {"error": "Not found"})
        with pytest.raises(VersionNotFound):
            NpmMetadataResolver().resolve(PackageRequest("does-not-exist"))

    @patch("esmgen.registry.npm.safe_get")
    def test_network_failure_is_distinguishable(self, mock_safe_get):
        """Connection errors surface as RegistryUnavailable with the cause kept."""
        cause = requests.ConnectionError("connection refused")
        mock_safe_get.side_effect = cause
        with pytest.raises(RegistryUnavailable) as info:
            NpmMetadataResolver().resolve(PackageRequest("left-pad"))
        assert not isinstance(info.value, VersionNotFound)
        assert info.value.cause is cause

    @patch("esmgen.registry.npm.safe_get")
    def test_server_error_is_registry_unavailable(self, mock_safe_get):
        mock_safe_get.return_value = _response(503, {"error": "down"})
        with pytest.raises(RegistryUnavailable):
            NpmMetadataResolver().resolve(PackageRequest("left-pad"))

    @patch("esmgen.registry.npm.safe_get")
    def test_invalid_json_is_registry_unavailable(self, mock_safe_get):
        res = _response(200)
        res.text = "<html>not json</html>"
        mock_safe_get.return_value = res
        with pytest.raises(RegistryUnavailable):
            NpmMetadataResolver().resolve(PackageRequest("left-pad"))
