"""
Query layer for the E-Learning data layer
Search predicates and cross-collection statistics
"""

from .queries import QueryService, SEARCH_FIELDS

__all__ = ['QueryService', 'SEARCH_FIELDS']
