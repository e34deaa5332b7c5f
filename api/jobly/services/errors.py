class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryDuplicateError(RepositoryError):
    """Raised when a create would repeat an existing natural key."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


class UnrecognizedFilterError(RepositoryValidationError):
    """Raised when a search names a filter that is not supported."""

    def __init__(self, names: list[str]) -> None:
        self.names = names
        super().__init__(f"unrecognized filters: {', '.join(names)}")


class InvalidFilterValueError(RepositoryValidationError):
    """Raised when a filter value cannot be coerced to its expected type."""


class NoFieldsToUpdateError(RepositoryValidationError):
    """Raised when a partial update carries no fields."""

    def __init__(self) -> None:
        super().__init__("no fields to update")
