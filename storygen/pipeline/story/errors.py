class StoryError(Exception):
    """Base class for input problems the user can fix."""

class CatalogError(StoryError): ...

class UnsupportedImageError(StoryError): ...

class NoChangesError(StoryError): ...

class UnknownImageError(CatalogError): ...

class MissingInputError(StoryError, ValueError):
    """A required prompt or image was not supplied."""
