"""esmgen - convert npm packages into standalone ES module bundles."""

__version__ = "0.1.0"
