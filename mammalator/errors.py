"""Exceptions raised while building a mammal mesh.

Every build is one-shot: any of these aborts the build and the partial
result is discarded.
"""


class MammalatorError(Exception):
    """Base class for all build failures."""


class ConfigurationError(MammalatorError, ValueError):
    """A bone, stop sequence, profile or species description is invalid."""


class DegenerateGeometryError(MammalatorError, RuntimeError):
    """The boolean solid library rejected or collapsed its input."""


class SolidConsumedError(MammalatorError, RuntimeError):
    """A solid was used again after a boolean operation consumed it."""


class SkinDataError(MammalatorError, AssertionError):
    """Decoded skin data is inconsistent with the bone graph."""
