"""
E-Learning data access layer
Seed retrieval, entity repositories and activity logging
"""

from .models import (
    ErrorKind,
    DataLayerError,
    NotFoundError,
    InvalidFormatError,
    ValidationError,
    Ok,
    Err,
    Result,
    EntityKind,
    ENTITY_KINDS,
)

__all__ = [
    'ErrorKind',
    'DataLayerError',
    'NotFoundError',
    'InvalidFormatError',
    'ValidationError',
    'Ok',
    'Err',
    'Result',
    'EntityKind',
    'ENTITY_KINDS',
]
