"""Project manifest: which packages (and versions) have been converted.

The manifest is a JSON document in the project root::

    {"packages": {"left-pad": "1.3.0"}}

Its absence is tolerated everywhere. Updating a project without a manifest
is a no-op; ``create`` makes an empty one. Writes go to a temporary file in
the same directory and are renamed over the existing file, so readers never see
a partial document.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, Optional

from esmgen.constants import Constants
from esmgen.errors import ManifestReadFailed, ManifestWriteFailed

logger = logging.getLogger(__name__)

ADD = "add"
REMOVE = "remove"


class Manifest:
    """Read-modify-write access to one project's manifest file."""

    def __init__(self, project_root: str, filename: str = Constants.MANIFEST_FILE):
        """Initialize the manifest handle.

        Args:
            project_root: Directory holding the manifest.
            filename: Manifest file name.
        """
        self._path = os.path.join(os.path.abspath(project_root), filename)
        self._lock = threading.Lock()

    @property
    def path(self) -> str:
        return self._path

    def exists(self) -> bool:
        return os.path.isfile(self._path)

    def _read_document(self) -> Optional[Dict[str, Any]]:
        try:
            with open(self._path, "r", encoding="utf-8") as fh:
                document = json.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            raise ManifestReadFailed(f"cannot read {self._path}: {exc}", cause=exc) from exc
        if not isinstance(document, dict):
            raise ManifestReadFailed(f"{self._path} is not a JSON object")
        return document

    def packages(self) -> Dict[str, str]:
        """Return the ``name -> version`` mapping; empty when there is no manifest."""
        document = self._read_document()
        if document is None:
            return {}
        packages = document.get("packages") or {}
        if not isinstance(packages, dict):
            raise ManifestReadFailed(f"'packages' in {self._path} is not a mapping")
        return {str(name): str(version) for name, version in packages.items()}

    def _write_document(self, document: Dict[str, Any]) -> None:
        directory = os.path.dirname(self._path)
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".esmgen-", suffix=".tmp", dir=directory)
        except OSError as exc:
            raise ManifestWriteFailed(f"cannot write {self._path}: {exc}", cause=exc) from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2, ensure_ascii=False)
                fh.write("\n")
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, self._path)
        except OSError as exc:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise ManifestWriteFailed(f"cannot write {self._path}: {exc}", cause=exc) from exc

    def create(self) -> bool:
        """Create an empty manifest; returns False when one already exists."""
        with self._lock:
            if self.exists():
                return False
            self._write_document({"packages": {}})
            logger.info("Created manifest %s", self._path)
            return True

    def update(self, name: str, action: str, version: Optional[str] = None) -> bool:
        """Apply ``action`` to ``name``.

        Args:
            name: Package name.
            action: ``"add"`` or ``"remove"``.
            version: Concrete version, required for ``"add"``.

        Returns:
            True when the manifest file was rewritten.

        Raises:
            ValueError: Unknown action or ``add`` without a version.
            ManifestReadFailed: The existing manifest is not valid JSON.
            ManifestWriteFailed: The rewrite failed.
        """
        if action not in (ADD, REMOVE):
            raise ValueError(f"unknown manifest action: {action}")
        if action == ADD and not version:
            raise ValueError("a version is required to add a package")

        with self._lock:
            document = self._read_document()
            if document is None:
                logger.debug("No manifest at %s; nothing to update", self._path)
                return False
            packages = document.get("packages")
            if not isinstance(packages, dict):
                packages = {}
                document["packages"] = packages

            if action == ADD:
                if packages.get(name) == version:
                    return False
                packages[name] = version
            else:
                if name not in packages:
                    return False
                del packages[name]

            self._write_document(document)
        logger.info("Manifest %s: %s %s", action, name, version or "")
        return True

    def add(self, name: str, version: str) -> bool:
        return self.update(name, ADD, version)

    def remove(self, name: str) -> bool:
        return self.update(name, REMOVE)
