"""
    Sqlrecord is a package for mapping database rows into records that
    track their own changes and persist themselves, with lifecycle hooks,
    typecasting of assigned values, and transactional saves. The useful
    features are exposed from the root level of the package; the
    process-wide typecasting settings live in sqlrecord.typecast.
"""

from sqlrecord.classes import (
    SqlModel,
    ColumnPolicy,
)
from sqlrecord.database import (
    Database,
    SqliteDatabase,
    Transaction,
)
from sqlrecord.dataset import Dataset
from sqlrecord.errors import (
    SqlRecordError,
    ConfigurationError,
    HookFailed,
    ValidationFailed,
    NoExistingObject,
    InvalidValue,
    MassAssignmentRestriction,
    RecordNotFound,
    Rollback,
    UsageError,
)
from sqlrecord.interfaces import (
    CursorProtocol,
    DatabaseProtocol,
    DatasetProtocol,
    ModelProtocol,
    TransactionProtocol,
)
from sqlrecord.typecast import (
    Typecaster,
    default_typecaster,
    set_datetime_class,
    get_datetime_class,
)
from sqlrecord.version import version
