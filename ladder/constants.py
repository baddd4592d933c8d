"""
Ladder-wide constants for collection naming and sport-specific data.

This module contains the naming conventions and per-sport field lists used
throughout the codebase to keep store layout decisions in one place.
"""

class CollectionConstants:
    """Constants for document store collection naming."""

    # Player profiles live in one collection shared by all sports
    USERS = "users"

    # Per-sport collections are "<prefix><sport>", e.g. "matches-pingpong"
    MATCHES_PREFIX = "matches-"
    ROOMS_PREFIX = "rooms-"

    @classmethod
    def matches(cls, sport: str) -> str:
        return f"{cls.MATCHES_PREFIX}{sport}"

    @classmethod
    def rooms(cls, sport: str) -> str:
        return f"{cls.ROOMS_PREFIX}{sport}"


class SportConstants:
    """Constants for supported sports."""

    PINGPONG = "pingpong"
    TENNIS = "tennis"
    BADMINTON = "badminton"

    # Additive per-side stats recorded on matches and summed on player profiles
    EXTRA_STATS = {
        TENNIS: ("aces", "doubleFaults", "winners"),
    }

    @classmethod
    def stat_fields(cls, sport: str) -> tuple:
        return cls.EXTRA_STATS.get(sport, ())


class DisplayConstants:
    """Constants for human-readable fields written onto documents."""

    # Legacy local-time format used by the "timestamp" and "createdAt" fields
    LEGACY_DATE_FORMAT = "%d.%m.%Y %H.%M.%S"

    DEFAULT_PLAYER1_NAME = "Player 1"
    DEFAULT_PLAYER2_NAME = "Player 2"
    UNKNOWN_NAME = "Unknown"
