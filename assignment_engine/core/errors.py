class CatalogLoadError(ValueError):
    """Raised when a catalog snapshot is rejected.

    The engine keeps serving the previously loaded snapshot when this is raised.
    """
