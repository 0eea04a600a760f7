"""
Utility modules for the E-Learning data layer
"""

from .logging_config import (
    setup_logging,
    get_contextual_logger,
    log_seed_request,
    log_store_operation,
    init_from_environment
)

__all__ = [
    'setup_logging',
    'get_contextual_logger',
    'log_seed_request',
    'log_store_operation',
    'init_from_environment'
]
