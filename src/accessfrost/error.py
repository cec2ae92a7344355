class SpecLoadingError(Exception):
    """
    Raised when the access provider file can not be found or contains errors.

    All the validation messages are joined by newlines so the CLI can print
    them one by one.
    """

    pass


class RepositoryError(Exception):
    """
    Infrastructure failure while talking to the warehouse.

    Aborts the whole run: nothing can be classified without the data
    that failed to load.
    """

    pass


class RowLimitExceededError(RepositoryError):
    def __init__(self, query: str, limit: int) -> None:
        super().__init__(
            f"query ({query}) exceeded the maximum of {limit} elements supported "
            "by Snowflake. Results would be truncated, please narrow down the scope."
        )
        self.query = query
        self.limit = limit


class AccessProviderError(Exception):
    """A failure scoped to a single access provider, reported as feedback."""

    pass
