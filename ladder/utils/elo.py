import math
from enum import Enum
from typing import Any, Optional, Tuple

from ladder.config import Config


class RatingScope(Enum):
    GLOBAL = "global"
    LOCAL = "local"


class RoomMode(Enum):
    OFFICE = "office"
    ARCADE = "arcade"
    PROFESSIONAL = "professional"

    @classmethod
    def coerce(cls, value: Any) -> 'RoomMode':
        """Map a stored mode value onto a RoomMode, defaulting to office"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.OFFICE


class LocalRatingPolicy(Enum):
    # Local deltas always come from room-local ratings
    INDEPENDENT = "independent"
    # Ranked matches move local ratings by the global delta
    LOCKSTEP = "lockstep"

    @classmethod
    def from_config(cls) -> 'LocalRatingPolicy':
        return cls(Config.LOCAL_RATING_POLICY)


def _coerce_number(value: Any) -> float:
    """Coerce malformed numeric input to 0"""
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded towards +infinity"""
    return int(math.floor(value + 0.5))


class EloCalculator:
    """Handles Elo rating calculations for both rating scopes"""

    @staticmethod
    def calculate_expected_score(rating_a: float, rating_b: float) -> float:
        """
        Calculate the expected score for player A against player B

        Args:
            rating_a: Player A's current rating
            rating_b: Player B's current rating

        Returns:
            Expected score (0.0 to 1.0) for player A
        """
        rating_a = _coerce_number(rating_a)
        rating_b = _coerce_number(rating_b)
        return 1 / (1 + math.pow(10, (rating_b - rating_a) / 400))

    @staticmethod
    def apply_mode(delta: int, mode: RoomMode) -> int:
        """
        Apply a room mode's local-scope modifier to an integer delta

        Args:
            delta: Undamped rating change
            mode: Room mode governing the local scope

        Returns:
            Rating change after the mode's dampening
        """
        mode = RoomMode.coerce(mode)
        if mode == RoomMode.ARCADE:
            return 0
        if mode == RoomMode.OFFICE and delta < 0:
            return round_half_up(delta * Config.OFFICE_LOSS_DAMPENING)
        return delta

    @staticmethod
    def calculate_delta(rating_self: Any, rating_opponent: Any, did_win: bool,
                        k_factor: Any = None, scope: RatingScope = RatingScope.GLOBAL,
                        mode: RoomMode = RoomMode.OFFICE) -> int:
        """
        Calculate the rating change for one player in one match

        Args:
            rating_self: Player's current rating in the scope
            rating_opponent: Opponent's current rating in the scope
            did_win: True if the player won
            k_factor: Room K-factor (ignored for the global scope)
            scope: Global or room-local scope
            mode: Room mode, only consulted for the local scope

        Returns:
            Integer rating change (can be positive, negative or zero)
        """
        if scope == RatingScope.GLOBAL:
            k = Config.GLOBAL_K_FACTOR
        elif k_factor is None:
            k = Config.DEFAULT_ROOM_K_FACTOR
        else:
            k = _coerce_number(k_factor)

        if scope == RatingScope.LOCAL and RoomMode.coerce(mode) == RoomMode.ARCADE:
            return 0

        expected_score = EloCalculator.calculate_expected_score(rating_self, rating_opponent)
        actual_score = 1.0 if did_win else 0.0
        delta = round_half_up(k * (actual_score - expected_score))

        if scope == RatingScope.LOCAL:
            return EloCalculator.apply_mode(delta, mode)
        return delta

    @staticmethod
    def calculate_match_deltas(player1_rating: Any, player2_rating: Any, player1_won: bool,
                               k_factor: Any = None, scope: RatingScope = RatingScope.GLOBAL,
                               mode: RoomMode = RoomMode.OFFICE) -> Tuple[int, int]:
        """
        Calculate rating changes for both players in a match

        Returns:
            Tuple of (player1_change, player2_change)
        """
        player1_change = EloCalculator.calculate_delta(
            player1_rating, player2_rating, player1_won, k_factor, scope, mode
        )
        player2_change = EloCalculator.calculate_delta(
            player2_rating, player1_rating, not player1_won, k_factor, scope, mode
        )
        return player1_change, player2_change

    @staticmethod
    def calculate_local_match_deltas(player1_local: Any, player2_local: Any, player1_won: bool,
                                     k_factor: Any, mode: RoomMode, is_ranked: bool,
                                     global_deltas: Tuple[int, int],
                                     policy: LocalRatingPolicy = LocalRatingPolicy.INDEPENDENT
                                     ) -> Tuple[int, int]:
        """
        Calculate room-local rating changes for both players

        Under LOCKSTEP a ranked match moves local ratings by the global deltas
        (after the room mode's modifier). Otherwise local deltas come from the
        room-local ratings, the room K-factor and mode.

        Returns:
            Tuple of (player1_local_change, player2_local_change)
        """
        if policy == LocalRatingPolicy.LOCKSTEP and is_ranked:
            global1, global2 = global_deltas
            return (EloCalculator.apply_mode(global1, mode),
                    EloCalculator.apply_mode(global2, mode))
        return EloCalculator.calculate_match_deltas(
            player1_local, player2_local, player1_won, k_factor, RatingScope.LOCAL, mode
        )

    @staticmethod
    def determine_winner(score1: Any, score2: Any, winner_name: Optional[str] = None,
                         player2_name: Optional[str] = None) -> bool:
        """
        Decide whether player 1 won a match

        Unequal scores decide directly. Equal scores fall back to an explicit
        winner name matching player 2, otherwise player 1 wins by convention.

        Returns:
            True if player 1 is the winner
        """
        score1 = _coerce_number(score1)
        score2 = _coerce_number(score2)
        if score1 != score2:
            return score1 > score2
        if winner_name and player2_name and winner_name == player2_name:
            return False
        return True

    @staticmethod
    def format_elo_change(elo_change: int) -> str:
        """Format a rating change for display with an explicit sign"""
        if elo_change > 0:
            return f"+{elo_change}"
        elif elo_change < 0:
            return str(elo_change)
        else:
            return "±0"
