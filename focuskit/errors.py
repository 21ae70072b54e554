"""Error taxonomy shared by the persistence and sync layers."""


class FocusKitError(Exception):
    """Base class for focuskit errors."""


class StorageUnavailableError(FocusKitError):
    """Raised when the key/value medium cannot be written (quota, read-only, I/O)."""


class RemoteError(FocusKitError):
    """Transport or validation failure reported by the remote store.

    The sync layer treats every subtype of failure identically, so the
    original exception is kept only for logging.
    """
