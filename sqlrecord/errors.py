class UsageError(BaseException):
    """Raised when the library is used incorrectly."""
    ...


def vert(condition: bool, error_message: str = '') -> None:
    """If condition is false, raises a ValueError with the given message."""
    if not condition:
        raise ValueError(error_message)

def tert(condition: bool, error_message: str = '') -> None:
    """If condition is false, raises a TypeError with the given message."""
    if not condition:
        raise TypeError(error_message)

def tressa(condition: bool, error_message: str = '') -> None:
    """If condition is false, raises a UsageError with the given message."""
    if not condition:
        raise UsageError(error_message)


class SqlRecordError(Exception):
    """Base class for errors raised by record operations."""
    ...


class ConfigurationError(SqlRecordError):
    """The model is missing configuration needed by the operation, e.g.
        a primary key.
    """
    ...


class HookFailed(SqlRecordError):
    """A before hook rejected the operation."""
    ...


class ValidationFailed(HookFailed):
    """Validation produced errors. The errors dict is available as the
        errors attribute.
    """
    errors: dict[str, list[str]]

    def __init__(self, errors: dict[str, list[str]]) -> None:
        self.errors = errors
        messages = [
            f'{column} {message}'
            for column, column_errors in errors.items()
            for message in column_errors
        ]
        super().__init__(', '.join(messages) or 'validation failed')


class NoExistingObject(SqlRecordError):
    """An update or delete did not modify exactly one row."""
    ...


class InvalidValue(SqlRecordError, ValueError):
    """A value could not be typecast to the column type."""
    ...


class MassAssignmentRestriction(SqlRecordError):
    """Strict mass assignment was given a column it may not set."""
    ...


class RecordNotFound(SqlRecordError):
    """A refresh did not find the row for the record."""
    ...


class Rollback(Exception):
    """Raise inside a transaction block to roll it back. The transaction
        that unwinds absorbs it; it is never converted to another error.
    """
    ...
