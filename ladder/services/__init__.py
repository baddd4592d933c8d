"""
Services package: read-only views derived from persisted match and room data.
"""

from .standings import StandingsAggregator, StandingsService

__all__ = ['StandingsAggregator', 'StandingsService']
