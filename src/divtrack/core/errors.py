"""Domain exceptions."""


class DivTrackError(Exception):
    """Base class for all tracker errors."""


class ConflictError(DivTrackError):
    """Invalid state transition (e.g. starting a second session)."""


class NotFoundError(DivTrackError):
    """Unknown league, session or snapshot id."""


class TransientFetchError(DivTrackError):
    """Price or league source unreachable or returned unusable data. Retryable."""


class MigrationError(DivTrackError):
    """A schema migration failed; the store must not be used."""

    def __init__(self, migration_id: str, message: str) -> None:
        super().__init__(f"Migration {migration_id} failed: {message}")
        self.migration_id = migration_id
