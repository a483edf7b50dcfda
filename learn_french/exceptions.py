"""Error taxonomy for the French content data layer."""


class ContentError(Exception):
    """Base exception for all content data layer errors."""


class StoreUnavailable(ContentError):
    """The local document store cannot be opened or is not open."""


class InvalidRecord(ContentError):
    """A record could not be normalized into a valid entity."""


class DuplicateId(ContentError):
    """A record with the same id already exists in the collection."""


class NotFound(ContentError):
    """No record with the given id exists in the collection."""


class BackupFormatError(ContentError):
    """A backup payload is malformed or unreadable."""
