"""
Canonical records for player, room and match documents.

Stored documents come from several generations of the app and carry legacy
field names. Each record has a single from_document() normalization step so
the rating code never probes raw documents directly.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ladder.config import Config
from ladder.constants import DisplayConstants, SportConstants
from ladder.database.store import DocumentSnapshot
from ladder.utils.date_resolver import (
    EPOCH_ZERO, format_legacy, resolve_match_instant, to_iso_string
)
from ladder.utils.elo import EloCalculator, RoomMode


def _as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return default


def _as_optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return None


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def match_time_fields(instant: datetime) -> Dict[str, str]:
    """Sortable ISO field plus the legacy human-readable time fields"""
    legacy = format_legacy(instant)
    return {
        'tsIso': to_iso_string(instant),
        'timestamp': legacy,
        'createdAt': legacy,
    }


@dataclass
class PlayerRecord:
    """A player's profile for one sport."""
    id: str
    sport: str
    name: str
    global_rating: int = Config.STARTING_RATING
    wins: int = 0
    losses: int = 0
    rating_history: List[Dict[str, Any]] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)
    achievements: List[Dict[str, Any]] = field(default_factory=list)
    has_sport_profile: bool = False

    @classmethod
    def from_document(cls, snapshot: DocumentSnapshot, sport: str) -> 'PlayerRecord':
        data = snapshot.data
        sports = data.get('sports') if isinstance(data.get('sports'), dict) else {}
        profile = sports.get(sport) if isinstance(sports.get(sport), dict) else None
        source = profile or {}

        history = source.get('eloHistory')
        achievements = data.get('achievements')

        return cls(
            id=snapshot.id,
            sport=sport,
            name=data.get('name') or data.get('displayName') or DisplayConstants.UNKNOWN_NAME,
            global_rating=_as_int(source.get('globalElo'), Config.STARTING_RATING),
            wins=_as_int(source.get('wins')),
            losses=_as_int(source.get('losses')),
            rating_history=list(history) if isinstance(history, list) else [],
            stats={
                stat: _as_int(source.get(stat))
                for stat in SportConstants.stat_fields(sport)
            },
            achievements=list(achievements) if isinstance(achievements, list) else [],
            has_sport_profile=profile is not None,
        )


@dataclass
class RoomMember:
    """A member entry inside a room document."""
    user_id: str
    name: str
    local_rating: int = Config.STARTING_RATING
    wins: int = 0
    losses: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)  # role, date, photoURL, ...

    # Fields owned by the rating engine; everything else is carried through
    RATING_FIELDS = ('userId', 'name', 'rating', 'wins', 'losses', 'roomNewRating')

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> 'RoomMember':
        return cls(
            user_id=str(data.get('userId')),
            name=data.get('name') or DisplayConstants.UNKNOWN_NAME,
            local_rating=_as_int(
                _first_present(data.get('roomNewRating'), data.get('rating')),
                Config.STARTING_RATING
            ),
            wins=_as_int(data.get('wins')),
            losses=_as_int(data.get('losses')),
            extra={k: v for k, v in data.items() if k not in cls.RATING_FIELDS},
        )

    @property
    def total_matches(self) -> int:
        return self.wins + self.losses

    def to_document(self) -> Dict[str, Any]:
        document = dict(self.extra)
        document.update({
            'userId': self.user_id,
            'name': self.name,
            'rating': self.local_rating,
            'wins': self.wins,
            'losses': self.losses,
        })
        return document


@dataclass
class RoomRecord:
    """A competitive group with its own local ratings."""
    id: str
    name: str = ""
    mode: RoomMode = RoomMode.OFFICE
    k_factor: float = Config.DEFAULT_ROOM_K_FACTOR
    is_ranked: bool = True
    members: List[RoomMember] = field(default_factory=list)
    has_season_history: bool = False
    exists: bool = True

    @classmethod
    def from_document(cls, snapshot: DocumentSnapshot) -> 'RoomRecord':
        data = snapshot.data
        k_factor = data.get('kFactor')
        if isinstance(k_factor, bool) or not isinstance(k_factor, (int, float)):
            k_factor = Config.DEFAULT_ROOM_K_FACTOR

        members: List[RoomMember] = []
        seen = set()
        for raw_member in data.get('members') or []:
            if not isinstance(raw_member, dict) or not raw_member.get('userId'):
                continue
            member = RoomMember.from_document(raw_member)
            # Members are unique by userId; first entry wins
            if member.user_id in seen:
                continue
            seen.add(member.user_id)
            members.append(member)

        return cls(
            id=snapshot.id,
            name=data.get('name') or "",
            mode=RoomMode.coerce(data.get('mode')),
            k_factor=k_factor,
            is_ranked=data.get('isRanked') is not False,
            members=members,
            has_season_history='seasonHistory' in data,
        )

    @classmethod
    def placeholder(cls, room_id: str) -> 'RoomRecord':
        """All-defaults stand-in for a room document that no longer exists"""
        return cls(id=room_id, exists=False)

    def member(self, user_id: str) -> Optional[RoomMember]:
        return next((m for m in self.members if m.user_id == user_id), None)


@dataclass
class MatchSide:
    """One player's embedded snapshot in a match."""
    name: str
    score: int = 0
    side: Optional[str] = None
    old_rating: Optional[int] = None
    new_rating: Optional[int] = None
    delta: Optional[int] = None
    old_local_rating: Optional[int] = None
    new_local_rating: Optional[int] = None
    local_delta: Optional[int] = None
    stats: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_document(cls, side: Optional[Dict[str, Any]], flat: Dict[str, Any],
                      index: int, sport: Optional[str] = None) -> 'MatchSide':
        side = side if isinstance(side, dict) else {}
        prefix = f"player{index}"
        default_name = (DisplayConstants.DEFAULT_PLAYER1_NAME if index == 1
                        else DisplayConstants.DEFAULT_PLAYER2_NAME)
        stat_fields = SportConstants.stat_fields(sport) if sport else ()

        return cls(
            name=side.get('name') or flat.get(f'{prefix}Name') or default_name,
            score=_as_int(_first_present(
                side.get('scores'), flat.get(f'score{index}'), flat.get(f'{prefix}Score')
            )),
            side=side.get('side'),
            old_rating=_as_optional_int(side.get('oldRating')),
            new_rating=_as_optional_int(side.get('newRating')),
            delta=_as_optional_int(_first_present(
                side.get('addedPoints'), flat.get(f'eloChangePlayer{index}')
            )),
            old_local_rating=_as_optional_int(side.get('roomOldRating')),
            new_local_rating=_as_optional_int(side.get('roomNewRating')),
            local_delta=_as_optional_int(side.get('roomAddedPoints')),
            stats={stat: _as_int(side.get(stat)) for stat in stat_fields if stat in side},
        )

    def to_document(self, stat_fields=(), default_side: Optional[str] = None) -> Dict[str, Any]:
        document = {
            'name': self.name,
            'scores': self.score,
            'side': self.side or default_side,
            'oldRating': self.old_rating,
            'newRating': self.new_rating,
            'addedPoints': self.delta,
            'roomOldRating': self.old_local_rating,
            'roomNewRating': self.new_local_rating,
            'roomAddedPoints': self.local_delta,
        }
        for stat in stat_fields:
            document[stat] = self.stats.get(stat, 0)
        return document

    @property
    def effective_local_delta(self) -> int:
        """Room points for this match, falling back to the global delta"""
        return _first_present(self.local_delta, self.delta, 0)

    @property
    def effective_local_rating(self) -> Optional[int]:
        return _first_present(self.new_local_rating, self.new_rating, self.old_rating)


@dataclass
class MatchRecord:
    """A normalized match document."""
    id: str
    room_id: Optional[str]
    player1_id: Optional[str]
    player2_id: Optional[str]
    player1: MatchSide
    player2: MatchSide
    is_ranked: Optional[bool] = None  # None when the document does not say
    winner_name: Optional[str] = None
    instant: datetime = EPOCH_ZERO
    sequence: int = 0

    @classmethod
    def from_document(cls, snapshot: DocumentSnapshot, sport: Optional[str] = None) -> 'MatchRecord':
        data = snapshot.data
        is_ranked = data.get('isRanked')
        return cls(
            id=snapshot.id,
            room_id=data.get('roomId'),
            player1_id=data.get('player1Id'),
            player2_id=data.get('player2Id'),
            player1=MatchSide.from_document(data.get('player1'), data, 1, sport),
            player2=MatchSide.from_document(data.get('player2'), data, 2, sport),
            is_ranked=is_ranked if isinstance(is_ranked, bool) else None,
            winner_name=data.get('winner'),
            instant=resolve_match_instant(data),
            sequence=snapshot.sequence,
        )

    @property
    def is_complete(self) -> bool:
        return bool(self.player1_id and self.player2_id and self.room_id)

    @property
    def player1_won(self) -> bool:
        return EloCalculator.determine_winner(
            self.player1.score, self.player2.score, self.winner_name, self.player2.name
        )

    @property
    def winner_id(self) -> Optional[str]:
        return self.player1_id if self.player1_won else self.player2_id

    def involves(self, player_id: str) -> bool:
        return player_id in (self.player1_id, self.player2_id)

    def side_for(self, player_id: str) -> MatchSide:
        return self.player1 if player_id == self.player1_id else self.player2

    def opponent_side_for(self, player_id: str) -> MatchSide:
        return self.player2 if player_id == self.player1_id else self.player1
