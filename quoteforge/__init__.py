from .config import config
from .db import db, session_scope
from .logging_setup import logger, get_logger
from .exceptions import (
    QuoteForgeError, ConfigError, DatabaseError, InvalidInputError,
    InvalidStateError, EmptyQuoteError, NotFoundError, ReportingError
)

__all__ = [
    'config',
    'db',
    'session_scope',
    'logger',
    'get_logger',
    'QuoteForgeError',
    'ConfigError',
    'DatabaseError',
    'InvalidInputError',
    'InvalidStateError',
    'EmptyQuoteError',
    'NotFoundError',
    'ReportingError'
]
