"""Archive fetcher: stream a package tarball and extract it.

Registry tarballs wrap their files in one directory (``package/`` by
convention, but not always). Exactly one leading path component is stripped
from every member so the destination receives the package files directly.
"""

from __future__ import annotations

import logging
import os
import tarfile
from typing import BinaryIO, List, Optional

import requests
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from esmgen.common.http_client import open_stream
from esmgen.common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from esmgen.errors import DownloadFailed, ExtractionFailed
from esmgen.models import ResolvedVersion

logger = logging.getLogger(__name__)


def strip_leading_component(path: str) -> Optional[str]:
    """Drop the first path component; None when nothing remains."""
    parts = path.replace("\\", "/").lstrip("/").split("/", 1)
    if len(parts) < 2 or not parts[1].strip("/"):
        return None
    return parts[1]


def extract_archive(fileobj: BinaryIO, destination: str, *, label: str = "") -> List[str]:
    """Extract a gzipped tar stream into ``destination``.

    The stream is read sequentially, so ``fileobj`` may be a network body.
    Extraction is complete when this function returns.

    Args:
        fileobj: Readable binary stream of a ``.tgz`` archive.
        destination: Target directory; created when missing.
        label: Package label used in error messages.

    Returns:
        Relative paths of extracted members, in archive order.

    Raises:
        ExtractionFailed: Corrupt archive, unsafe member or I/O failure.
    """
    os.makedirs(destination, exist_ok=True)
    extracted: List[str] = []
    try:
        with tarfile.open(fileobj=fileobj, mode="r|gz") as archive:
            for member in archive:
                stripped = strip_leading_component(member.name)
                if stripped is None:
                    continue
                member.name = stripped
                if member.islnk():
                    link_target = strip_leading_component(member.linkname)
                    if link_target is None:
                        continue
                    member.linkname = link_target
                archive.extract(member, destination, filter="data")
                extracted.append(stripped)
    except (tarfile.TarError, EOFError, OSError) as exc:
        raise ExtractionFailed(f"could not extract archive: {exc}", package=label or None, cause=exc) from exc
    return extracted


def download_archive(
    resolved: ResolvedVersion,
    destination: str,
    *,
    timeout: Optional[float] = None,
) -> List[str]:
    """Stream ``resolved``'s tarball into ``destination`` and extract it.

    Raises:
        DownloadFailed: The transfer failed or returned a non-2xx status.
        ExtractionFailed: The payload was not a valid package archive.
    """
    label = resolved.label
    url = resolved.archive_url
    try:
        os.makedirs(destination, exist_ok=True)
    except OSError as exc:
        raise DownloadFailed(f"cannot create {destination}: {exc}", package=label, cause=exc) from exc

    try:
        response = open_stream(url, context="tarball", timeout=timeout)
    except requests.RequestException as exc:
        raise DownloadFailed(f"tarball request failed: {exc}", package=label, cause=exc) from exc

    try:
        if not 200 <= response.status_code < 300:
            raise DownloadFailed(
                f"tarball request returned HTTP {response.status_code} ({safe_url(url)})",
                package=label,
            )
        # Honour transport-level Content-Encoding; the tar payload stays gzipped.
        response.raw.decode_content = True
        with Timer() as t:
            try:
                members = extract_archive(response.raw, destination, label=label)
            except (Urllib3HTTPError, requests.RequestException) as exc:
                raise DownloadFailed(
                    f"connection dropped while streaming tarball: {exc}", package=label, cause=exc
                ) from exc
    finally:
        response.close()

    if is_debug_enabled(logger):
        logger.debug(
            "Archive extracted",
            extra=extra_context(
                event="extract",
                component="fetcher",
                action="extract",
                outcome="success",
                target=label,
                members=len(members),
                duration_ms=t.duration_ms(),
            ),
        )
    return members

