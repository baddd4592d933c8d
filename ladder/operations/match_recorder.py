"""
Match Recorder Module

Applies newly reported match results to two players and one room, writing the
match documents and the updated room and player state in one unit of work.

Rows reported together form a short chronological sequence: each row sees the
ratings left by the previous one, and rows are stamped one second apart so
their timestamps stay distinct and sortable.

The four kinds of writes (matches, room members, two player profiles) go through
a BatchedWriter and normally fit in a single atomic commit. A call large
enough to span several commits can leave partial state on failure; a full
recalculation repairs it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ladder.constants import CollectionConstants, SportConstants
from ladder.data_models.records import (
    MatchSide, PlayerRecord, RoomMember, RoomRecord, match_time_fields
)
from ladder.database.store import ArrayUnion, DocumentStore, Increment
from ladder.operations.batch_writer import BatchedWriter
from ladder.utils.elo import EloCalculator, LocalRatingPolicy, RatingScope
from ladder.utils.exceptions import (
    LadderException, MatchValidationError, PlayerNotFoundError, RoomNotFoundError
)
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class MatchRow:
    """One reported result between the two players"""
    score1: int
    score2: int
    side1: Optional[str] = None
    side2: Optional[str] = None
    stats1: Dict[str, int] = field(default_factory=dict)
    stats2: Dict[str, int] = field(default_factory=dict)

    @staticmethod
    def _parse_score(value: Any, index: int) -> int:
        if isinstance(value, bool):
            raise MatchValidationError(f"Score {index} must be a number")
        try:
            score = float(value)
        except (TypeError, ValueError):
            raise MatchValidationError(f"Score {index} must be a number, got {value!r}")
        if score != score or score < 0 or score == float('inf'):
            raise MatchValidationError(f"Score {index} must be a non-negative number")
        return int(score)

    @staticmethod
    def _parse_stats(stats: Any) -> Dict[str, int]:
        """Stat counters as non-negative ints; missing values count as 0"""
        parsed: Dict[str, int] = {}
        for name, value in dict(stats or {}).items():
            if value is None or value == '':
                parsed[name] = 0
                continue
            if isinstance(value, bool):
                raise MatchValidationError(f"Stat {name} must be a number")
            try:
                number = float(value)
            except (TypeError, ValueError):
                raise MatchValidationError(f"Stat {name} must be a number, got {value!r}")
            if number != number or number < 0 or number == float('inf'):
                raise MatchValidationError(f"Stat {name} must be a non-negative number")
            parsed[name] = int(number)
        return parsed

    @classmethod
    def coerce(cls, row: Union['MatchRow', Sequence, Dict[str, Any]]) -> 'MatchRow':
        """Accept a MatchRow, a (score1, score2[, stats1, stats2]) tuple or a dict"""
        if isinstance(row, cls):
            return cls(cls._parse_score(row.score1, 1), cls._parse_score(row.score2, 2),
                       row.side1, row.side2, cls._parse_stats(row.stats1), cls._parse_stats(row.stats2))
        if isinstance(row, dict):
            return cls(
                score1=cls._parse_score(row.get('score1'), 1),
                score2=cls._parse_score(row.get('score2'), 2),
                side1=row.get('side1') or None,
                side2=row.get('side2') or None,
                stats1=cls._parse_stats(row.get('stats1')),
                stats2=cls._parse_stats(row.get('stats2')),
            )
        if isinstance(row, (list, tuple)) and len(row) >= 2:
            stats1 = row[2] if len(row) > 2 else None
            stats2 = row[3] if len(row) > 3 else None
            return cls(cls._parse_score(row[0], 1), cls._parse_score(row[1], 2),
                       stats1=cls._parse_stats(stats1), stats2=cls._parse_stats(stats2))
        raise MatchValidationError(f"Unrecognized match row: {row!r}")


@dataclass
class RecordingResult:
    """Outcome of a recording call with a human-readable cause"""
    success: bool
    message: str
    match_ids: List[str] = field(default_factory=list)
    player1_rating: Optional[int] = None
    player2_rating: Optional[int] = None
    player1_local_rating: Optional[int] = None
    player2_local_rating: Optional[int] = None

    def __bool__(self) -> bool:
        return self.success


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MatchRecorder:
    """
    Records reported matches against the current player and room state.

    Global ratings move only when the room is ranked; local ratings always
    follow the room's mode and K-factor.
    """

    def __init__(self, store: DocumentStore, policy: Optional[LocalRatingPolicy] = None,
                 clock: Callable[[], datetime] = _utc_now, batch_limit: Optional[int] = None):
        """
        Initialize with a document store.

        Args:
            store: Document store holding users, rooms and matches
            policy: Local rating policy (defaults to Config.LOCAL_RATING_POLICY)
            clock: Source of the first row's timestamp
            batch_limit: Auto-commit threshold for the writer
        """
        self.store = store
        self.policy = policy or LocalRatingPolicy.from_config()
        self.clock = clock
        self.batch_limit = batch_limit
        self.logger = logger

    async def record_matches(self, sport: str, room_id: str, player1_id: str, player2_id: str,
                             rows: Sequence[Any],
                             members: Optional[Sequence[Union[RoomMember, Dict[str, Any]]]] = None
                             ) -> RecordingResult:
        """
        Record one or more results between two players in a room.

        Args:
            sport: Sport key, e.g. "pingpong"
            room_id: Room the matches were played in
            player1_id: First player's user id
            player2_id: Second player's user id
            rows: Results in play order (MatchRow, tuples or dicts)
            members: Room member list as currently known; read from the room if omitted

        Returns:
            RecordingResult, truthy on success. Errors are logged, never raised.
        """
        try:
            return await self._record(sport, room_id, player1_id, player2_id, rows, members)
        except LadderException as e:
            self.logger.warning(f"Rejected matches for room {room_id}: {e}")
            return RecordingResult(False, e.user_message)
        except Exception as e:
            self.logger.error(f"Failed to process and save matches for room {room_id}: {e}", exc_info=True)
            return RecordingResult(False, f"Could not save matches: {e}")

    async def _record(self, sport, room_id, player1_id, player2_id, rows, members) -> RecordingResult:
        if not rows:
            raise MatchValidationError("At least one match result is required")
        if not player1_id or not player2_id:
            raise MatchValidationError("Both players must be selected")
        if player1_id == player2_id:
            raise MatchValidationError("A player cannot play against themselves")
        parsed_rows = [MatchRow.coerce(row) for row in rows]

        room_snapshot = await self.store.get_by_id(CollectionConstants.rooms(sport), room_id)
        if room_snapshot is None:
            raise RoomNotFoundError(room_id)
        room = RoomRecord.from_document(room_snapshot)

        snapshots = await self.store.batch_get_by_ids(CollectionConstants.USERS, [player1_id, player2_id])
        missing = [pid for pid, snap in zip((player1_id, player2_id), snapshots) if snap is None]
        if missing:
            raise PlayerNotFoundError(missing)
        player1 = PlayerRecord.from_document(snapshots[0], sport)
        player2 = PlayerRecord.from_document(snapshots[1], sport)

        draft = self._draft_members(room, members)
        member1 = self._ensure_member(draft, player1)
        member2 = self._ensure_member(draft, player2)

        stat_fields = SportConstants.stat_fields(sport)
        writer = BatchedWriter(self.store, self.batch_limit)
        matches_collection = CollectionConstants.matches(sport)

        current1, current2 = player1.global_rating, player2.global_rating
        wins1 = wins2 = 0
        history1: List[Dict[str, Any]] = []
        history2: List[Dict[str, Any]] = []
        stat_totals1 = {stat: 0 for stat in stat_fields}
        stat_totals2 = {stat: 0 for stat in stat_fields}
        match_ids: List[str] = []
        start = self.clock()

        for index, row in enumerate(parsed_rows):
            if row.score1 == row.score2:
                self.logger.warning(
                    f"Equal scores {row.score1}-{row.score2} in room {room_id}; counting as a win for player 1"
                )
            player1_won = EloCalculator.determine_winner(row.score1, row.score2)

            if room.is_ranked:
                global_deltas = EloCalculator.calculate_match_deltas(
                    current1, current2, player1_won, scope=RatingScope.GLOBAL
                )
            else:
                global_deltas = (0, 0)

            local_deltas = EloCalculator.calculate_local_match_deltas(
                member1.local_rating, member2.local_rating, player1_won,
                room.k_factor, room.mode, room.is_ranked, global_deltas, self.policy
            )

            instant = start + timedelta(seconds=index)
            time_fields = match_time_fields(instant)

            side1 = MatchSide(
                name=member1.name, score=row.score1, side=row.side1,
                old_rating=current1, new_rating=current1 + global_deltas[0], delta=global_deltas[0],
                old_local_rating=member1.local_rating,
                new_local_rating=member1.local_rating + local_deltas[0], local_delta=local_deltas[0],
                stats=row.stats1,
            )
            side2 = MatchSide(
                name=member2.name, score=row.score2, side=row.side2,
                old_rating=current2, new_rating=current2 + global_deltas[1], delta=global_deltas[1],
                old_local_rating=member2.local_rating,
                new_local_rating=member2.local_rating + local_deltas[1], local_delta=local_deltas[1],
                stats=row.stats2,
            )

            match_document = {
                'roomId': room_id,
                **time_fields,
                'isRanked': room.is_ranked,
                'player1Id': player1_id,
                'player2Id': player2_id,
                'players': [player1_id, player2_id],
                'player1': side1.to_document(stat_fields, default_side='left'),
                'player2': side2.to_document(stat_fields, default_side='right'),
                'winner': member1.name if player1_won else member2.name,
            }
            match_ref = self.store.doc(matches_collection)
            await writer.set(match_ref, match_document)
            match_ids.append(match_ref.id)

            # Running state for the next row
            current1, current2 = side1.new_rating, side2.new_rating
            member1.local_rating = side1.new_local_rating
            member2.local_rating = side2.new_local_rating
            if player1_won:
                wins1 += 1
                member1.wins += 1
                member2.losses += 1
            else:
                wins2 += 1
                member2.wins += 1
                member1.losses += 1

            if room.is_ranked:
                history1.append({'ts': time_fields['tsIso'], 'elo': current1})
                history2.append({'ts': time_fields['tsIso'], 'elo': current2})

            for stat in stat_fields:
                stat_totals1[stat] += row.stats1.get(stat, 0)
                stat_totals2[stat] += row.stats2.get(stat, 0)

        await writer.update(
            self.store.doc(CollectionConstants.rooms(sport), room_id),
            {'members': [member.to_document() for member in draft]}
        )
        await writer.update(
            self.store.doc(CollectionConstants.USERS, player1_id),
            self._player_patch(sport, current1, wins1, wins2, history1, stat_totals1)
        )
        await writer.update(
            self.store.doc(CollectionConstants.USERS, player2_id),
            self._player_patch(sport, current2, wins2, wins1, history2, stat_totals2)
        )
        await writer.flush()

        self.logger.info(
            f"Recorded {len(parsed_rows)} matches in room {room_id} ({sport}): "
            f"global {current1} ({EloCalculator.format_elo_change(current1 - player1.global_rating)}) / "
            f"{current2} ({EloCalculator.format_elo_change(current2 - player2.global_rating)}), "
            f"local {member1.local_rating} / {member2.local_rating}, commits={writer.commits}"
        )

        return RecordingResult(
            True,
            f"Recorded {len(parsed_rows)} match(es)",
            match_ids=match_ids,
            player1_rating=current1,
            player2_rating=current2,
            player1_local_rating=member1.local_rating,
            player2_local_rating=member2.local_rating,
        )

    @staticmethod
    def _draft_members(room: RoomRecord, members) -> List[RoomMember]:
        """Copy the member list so the room document is only changed by the final write"""
        if members is None:
            source = [member.to_document() for member in room.members]
        else:
            source = [m.to_document() if isinstance(m, RoomMember) else dict(m) for m in members]

        draft: List[RoomMember] = []
        seen = set()
        for raw in source:
            if not raw.get('userId'):
                continue
            member = RoomMember.from_document(raw)
            if member.user_id in seen:
                continue
            seen.add(member.user_id)
            draft.append(member)
        return draft

    @staticmethod
    def _ensure_member(draft: List[RoomMember], player: PlayerRecord) -> RoomMember:
        """Find the player's member entry, adding one at the starting rating on first appearance"""
        for member in draft:
            if member.user_id == player.id:
                return member
        member = RoomMember(user_id=player.id, name=player.name)
        draft.append(member)
        return member

    @staticmethod
    def _player_patch(sport: str, rating: int, wins: int, losses: int,
                      history: List[Dict[str, Any]], stat_totals: Dict[str, int]) -> Dict[str, Any]:
        prefix = f"sports.{sport}"
        patch: Dict[str, Any] = {
            f"{prefix}.globalElo": rating,
            f"{prefix}.wins": Increment(wins),
            f"{prefix}.losses": Increment(losses),
        }
        if history:
            patch[f"{prefix}.eloHistory"] = ArrayUnion(*history)
        for stat, total in stat_totals.items():
            patch[f"{prefix}.{stat}"] = Increment(total)
        return patch
