"""
Operations Layer

Business logic that composes store reads and batched writes into complete
rating workflows:
- BatchedWriter: auto-committing write batches under the store's cap
- MatchRecorder: applies newly reported matches to players and a room
- RatingRecalculator: replays a sport's full history and rewrites all ratings
"""

from .batch_writer import BatchedWriter
from .match_recorder import MatchRecorder, MatchRow, RecordingResult
from .recalculation import RatingRecalculator, RecalculationReport

__all__ = [
    'BatchedWriter', 'MatchRecorder', 'MatchRow', 'RecordingResult',
    'RatingRecalculator', 'RecalculationReport'
]
