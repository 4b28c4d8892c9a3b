"""Registry clients."""

from .npm import NpmMetadataResolver, package_url, resolve_from_document

__all__ = ["NpmMetadataResolver", "package_url", "resolve_from_document"]
