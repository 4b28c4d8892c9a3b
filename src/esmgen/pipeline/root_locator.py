"""Locate the package root inside an extracted archive."""

from __future__ import annotations

import logging
import os

from esmgen.constants import Constants
from esmgen.errors import RootNotFound
from esmgen.models import ExtractedPackage

logger = logging.getLogger(__name__)


def has_descriptor(directory: str) -> bool:
    """Return True when ``directory`` holds a package descriptor file."""
    return os.path.isfile(os.path.join(directory, Constants.PACKAGE_JSON_FILE))


def find_package_root(directory: str) -> ExtractedPackage:
    """Return ``directory`` or its first child holding a descriptor.

    Children are visited in lexical order so the result does not depend on
    filesystem enumeration order.

    Raises:
        RootNotFound: Neither the directory nor any immediate subdirectory
            contains a descriptor. Retrying will not help.
    """
    if has_descriptor(directory):
        return ExtractedPackage(root_path=directory)

    try:
        names = sorted(os.listdir(directory))
    except OSError as exc:
        raise RootNotFound(f"cannot list {directory}: {exc}", cause=exc) from exc

    for name in names:
        candidate = os.path.join(directory, name)
        if os.path.isdir(candidate) and has_descriptor(candidate):
            logger.debug("Package root found one level down: %s", name)
            return ExtractedPackage(root_path=candidate)

    raise RootNotFound(f"Could not determine extracted package root in {directory}")
