"""
Standings data models.

Immutable view objects derived from a room's match history. Nothing here is
persisted.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional


@dataclass(frozen=True)
class FormEntry:
    """Single recent result from one player's point of view."""
    match_id: str
    result: str  # 'W' or 'L'
    opponent_id: str
    opponent_name: str
    score: str  # Own score first, e.g. "11-5"
    local_delta: int
    played_at: datetime


@dataclass(frozen=True)
class PlayerStandings:
    """Room standings for one player."""
    player_id: str
    name: str
    rating: int  # Stored local rating, always available
    visible_rating: Optional[int]  # None while below the visibility threshold

    matches_played: int
    wins: int
    losses: int
    win_rate: float

    current_streak: int  # Positive for wins, negative for losses
    longest_win_streak: int
    longest_loss_streak: int

    form: List[FormEntry]  # Most recent first
    average_local_delta: float
    total_local_points: int

    @property
    def is_rating_visible(self) -> bool:
        return self.visible_rating is not None

    @property
    def streak_display(self) -> str:
        if self.current_streak > 0:
            return f"W{self.current_streak}"
        elif self.current_streak < 0:
            return f"L{abs(self.current_streak)}"
        return "W0"


@dataclass(frozen=True)
class SeasonRow:
    """Final season placement of one player in a room."""
    user_id: str
    name: str
    place: int
    matches_played: int
    wins: int
    losses: int
    win_rate: float
    total_added_points: int
    adj_points: float
    longest_win_streak: int
    room_rating: int
