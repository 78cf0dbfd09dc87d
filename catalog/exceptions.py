class CatalogError(Exception):
    """Base class for catalog failures."""


class ValidationError(CatalogError):
    pass


class NotFound(CatalogError):
    pass


class LocalWriteFailed(CatalogError):
    pass


class RemoteWriteFailed(CatalogError):
    """The storefront rejected or never received an update. Non-fatal to a save."""


class AuditWriteFailed(CatalogError):
    """The audit entry could not be stored. Non-fatal to a save."""


class StoreTimeout(CatalogError):
    pass
