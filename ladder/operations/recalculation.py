"""
Historical rating recalculation.

Replays a sport's full match history from the starting rating and rewrites
every match snapshot, room member list and player profile for that sport.
The replay itself is pure (RatingRecalculator.replay); recalculate_sport() and
run() handle loading and writing.

Writes happen in three phases (matches, rooms, users), each flushed before the
next starts. A failure part way leaves earlier batches committed; rerunning
the recalculation repairs the sport since the output never depends on the
previous stored ratings.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ladder.config import Config
from ladder.constants import CollectionConstants, SportConstants
from ladder.data_models.records import (
    MatchRecord, MatchSide, PlayerRecord, RoomRecord, match_time_fields
)
from ladder.database.store import DELETE_FIELD, DocumentStore
from ladder.operations.batch_writer import BatchedWriter
from ladder.utils.elo import EloCalculator, LocalRatingPolicy, RatingScope
from ladder.utils.exceptions import RecalculationError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class PlayerState:
    """Running global state for one player"""
    rating: int = Config.STARTING_RATING
    wins: int = 0
    losses: int = 0
    history: List[Dict[str, Any]] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)


@dataclass
class LocalState:
    """Running state for one player inside one room"""
    rating: int = Config.STARTING_RATING
    wins: int = 0
    losses: int = 0


@dataclass
class ReplayState:
    """Running ratings keyed by player id and by (room id, player id)"""
    players: Dict[str, PlayerState] = field(default_factory=dict)
    local: Dict[Tuple[str, str], LocalState] = field(default_factory=dict)

    def player(self, player_id: str) -> PlayerState:
        if player_id not in self.players:
            self.players[player_id] = PlayerState()
        return self.players[player_id]

    def room_player(self, room_id: str, player_id: str) -> LocalState:
        key = (room_id, player_id)
        if key not in self.local:
            self.local[key] = LocalState()
        return self.local[key]


@dataclass
class ReplayedMatch:
    """Recomputed snapshot for one match"""
    match: MatchRecord
    player1: MatchSide
    player2: MatchSide
    is_ranked: bool
    player1_won: bool

    @property
    def winner_name(self) -> str:
        return self.player1.name if self.player1_won else self.player2.name


@dataclass
class ReplayResult:
    """Output of a pure replay"""
    state: ReplayState
    matches: List[ReplayedMatch] = field(default_factory=list)
    skipped_match_ids: List[str] = field(default_factory=list)
    missing_room_ids: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class RecalculationReport:
    """Per-sport counts for the migration summary"""
    sport: str
    matches_processed: int = 0
    matches_skipped: int = 0
    rooms_updated: int = 0
    rooms_missing: List[str] = field(default_factory=list)
    users_updated: int = 0
    users_skipped: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    commits: int = 0

    def summary(self) -> str:
        return (
            f"{self.sport}: {self.matches_processed} matches processed "
            f"({self.matches_skipped} skipped), {self.rooms_updated} rooms updated, "
            f"{self.users_updated} users updated, {len(self.users_skipped)} users skipped"
        )


class RatingRecalculator:
    """Rebuilds all rating state of a sport from its match history"""

    def __init__(self, store: DocumentStore, policy: Optional[LocalRatingPolicy] = None,
                 batch_limit: Optional[int] = None):
        self.store = store
        self.policy = policy or LocalRatingPolicy.from_config()
        self.batch_limit = batch_limit
        self.logger = logger

    @staticmethod
    def order_matches(matches: Iterable[MatchRecord]) -> List[MatchRecord]:
        """Ascending by resolved instant; equal instants keep their input order"""
        return sorted(matches, key=lambda match: match.instant)

    @staticmethod
    def replay(matches: Iterable[MatchRecord], rooms: Dict[str, RoomRecord], sport: str,
               roster_ids: Iterable[str] = (),
               policy: LocalRatingPolicy = LocalRatingPolicy.INDEPENDENT) -> ReplayResult:
        """
        Replay matches in chronological order from the starting rating.

        Args:
            matches: Normalized matches in store order
            rooms: Known rooms by id; matches in other rooms use a default room
            sport: Sport key, selects the aggregated stat fields
            roster_ids: Players initialized even if they have no matches
            policy: Local rating policy

        Returns:
            ReplayResult with the final state and one ReplayedMatch per replayed match
        """
        state = ReplayState()
        result = ReplayResult(state=state)
        stat_fields = SportConstants.stat_fields(sport)

        for player_id in roster_ids:
            state.player(player_id).stats = {stat: 0 for stat in stat_fields}
        for room in rooms.values():
            for member in room.members:
                state.room_player(room.id, member.user_id)

        for match in RatingRecalculator.order_matches(matches):
            if not match.is_complete:
                result.skipped_match_ids.append(match.id)
                result.warnings.append(f"Skipped match {match.id}: missing player or room id")
                continue

            room = rooms.get(match.room_id)
            if room is None:
                room = RoomRecord.placeholder(match.room_id)
                rooms = {**rooms, match.room_id: room}
                result.missing_room_ids.append(match.room_id)
                result.warnings.append(
                    f"Room {match.room_id} not found; replaying its matches with default settings"
                )

            result.matches.append(
                RatingRecalculator._replay_match(state, match, room, stat_fields, policy)
            )

        return result

    @staticmethod
    def _replay_match(state: ReplayState, match: MatchRecord, room: RoomRecord,
                      stat_fields: Sequence[str], policy: LocalRatingPolicy) -> ReplayedMatch:
        player1 = state.player(match.player1_id)
        player2 = state.player(match.player2_id)
        local1 = state.room_player(room.id, match.player1_id)
        local2 = state.room_player(room.id, match.player2_id)

        is_ranked = match.is_ranked is not False and room.is_ranked
        player1_won = match.player1_won

        if is_ranked:
            global_deltas = EloCalculator.calculate_match_deltas(
                player1.rating, player2.rating, player1_won, scope=RatingScope.GLOBAL
            )
        else:
            global_deltas = (0, 0)
        local_deltas = EloCalculator.calculate_local_match_deltas(
            local1.rating, local2.rating, player1_won, room.k_factor, room.mode,
            is_ranked, global_deltas, policy
        )

        sides = []
        for source, player, local, delta, local_delta in (
            (match.player1, player1, local1, global_deltas[0], local_deltas[0]),
            (match.player2, player2, local2, global_deltas[1], local_deltas[1]),
        ):
            sides.append(MatchSide(
                name=source.name,
                score=source.score,
                side=source.side,
                old_rating=player.rating,
                new_rating=player.rating + delta,
                delta=delta,
                old_local_rating=local.rating,
                new_local_rating=local.rating + local_delta,
                local_delta=local_delta,
                stats={stat: source.stats.get(stat, 0) for stat in stat_fields},
            ))
            player.rating += delta
            local.rating += local_delta
            for stat in stat_fields:
                player.stats[stat] = player.stats.get(stat, 0) + source.stats.get(stat, 0)

        winner, loser = (player1, player2) if player1_won else (player2, player1)
        local_winner, local_loser = (local1, local2) if player1_won else (local2, local1)
        winner.wins += 1
        loser.losses += 1
        local_winner.wins += 1
        local_loser.losses += 1

        if is_ranked:
            ts = match_time_fields(match.instant)['tsIso']
            player1.history.append({'ts': ts, 'elo': player1.rating})
            player2.history.append({'ts': ts, 'elo': player2.rating})

        return ReplayedMatch(match, sides[0], sides[1], is_ranked, player1_won)

    async def _load_rooms(self, sport: str) -> Dict[str, RoomRecord]:
        snapshots = await self.store.query(CollectionConstants.rooms(sport))
        return {snap.id: RoomRecord.from_document(snap) for snap in snapshots}

    async def _load_roster(self, sport: str, referenced_ids: Set[str]) -> Tuple[Dict[str, PlayerRecord], List[str]]:
        """Players holding a profile for the sport plus existing referenced players"""
        snapshots = await self.store.query(
            CollectionConstants.USERS, filters=[(f"sports.{sport}", "!=", None)]
        )
        roster = {snap.id: PlayerRecord.from_document(snap, sport) for snap in snapshots}

        unknown = sorted(pid for pid in referenced_ids if pid not in roster)
        missing: List[str] = []
        for player_id, snap in zip(unknown, await self.store.batch_get_by_ids(CollectionConstants.USERS, unknown)):
            if snap is None:
                missing.append(player_id)
            else:
                roster[player_id] = PlayerRecord.from_document(snap, sport)
        return roster, missing

    async def recalculate_sport(self, sport: str) -> RecalculationReport:
        """
        Recalculate every rating of one sport and write the results.

        Returns:
            RecalculationReport with per-phase counts and collected warnings
        """
        report = RecalculationReport(sport=sport)
        stat_fields = SportConstants.stat_fields(sport)
        matches_collection = CollectionConstants.matches(sport)
        rooms_collection = CollectionConstants.rooms(sport)

        self.logger.info(f"Processing sport: {sport}")
        match_snapshots = await self.store.query(matches_collection)
        matches = [MatchRecord.from_document(snap, sport) for snap in match_snapshots]
        rooms = await self._load_rooms(sport)

        referenced_ids = {pid for match in matches for pid in (match.player1_id, match.player2_id) if pid}
        roster, missing_players = await self._load_roster(sport, referenced_ids)
        self.logger.info(
            f"Loaded {len(matches)} matches, {len(rooms)} rooms and {len(roster)} players for {sport}"
        )

        result = self.replay(matches, rooms, sport, roster_ids=sorted(roster), policy=self.policy)
        report.matches_skipped = len(result.skipped_match_ids)
        report.rooms_missing = sorted(set(result.missing_room_ids))
        report.users_skipped = missing_players
        report.warnings.extend(result.warnings)
        report.warnings.extend(f"Skipped missing user: {pid}" for pid in missing_players)
        for warning in report.warnings:
            self.logger.warning(warning)

        writer = BatchedWriter(self.store, self.batch_limit)

        # Phase 1: match snapshots
        for replayed in result.matches:
            match = replayed.match
            patch = {
                'roomId': match.room_id,
                **match_time_fields(match.instant),
                'isRanked': replayed.is_ranked,
                'player1Id': match.player1_id,
                'player2Id': match.player2_id,
                'players': [match.player1_id, match.player2_id],
                'player1': replayed.player1.to_document(stat_fields, default_side='left'),
                'player2': replayed.player2.to_document(stat_fields, default_side='right'),
                'winner': replayed.winner_name,
            }
            await writer.update(self.store.doc(matches_collection, match.id), patch)
            report.matches_processed += 1
        await writer.flush()
        self.logger.info(f"Matches updated for {sport}: {report.matches_processed}")

        # Phase 2: room member lists
        for room in rooms.values():
            members = []
            for member in room.members:
                local = result.state.local.get((room.id, member.user_id), LocalState())
                member.local_rating = local.rating
                member.wins = local.wins
                member.losses = local.losses
                members.append(member.to_document())
            patch: Dict[str, Any] = {'members': members}
            if room.has_season_history:
                patch['seasonHistory'] = DELETE_FIELD
            await writer.update(self.store.doc(rooms_collection, room.id), patch)
            report.rooms_updated += 1
        await writer.flush()
        self.logger.info(f"Rooms updated for {sport}: {report.rooms_updated}")

        # Phase 3: player profiles
        prefix = f"sports.{sport}"
        for player_id in sorted(roster):
            player = roster[player_id]
            final = result.state.players.get(player_id, PlayerState())
            patch = {
                f"{prefix}.globalElo": final.rating,
                f"{prefix}.wins": final.wins,
                f"{prefix}.losses": final.losses,
                f"{prefix}.eloHistory": list(final.history),
                'achievements': [
                    achievement for achievement in player.achievements
                    if not (isinstance(achievement, dict) and achievement.get('sport') == sport)
                ],
            }
            for stat in stat_fields:
                patch[f"{prefix}.{stat}"] = final.stats.get(stat, 0)
            await writer.update(self.store.doc(CollectionConstants.USERS, player_id), patch)
            report.users_updated += 1
        await writer.flush()

        report.commits = writer.commits
        self.logger.info(f"Finished {report.summary()} in {report.commits} commits")
        return report

    async def discover_sports(self) -> List[str]:
        """Sports that have a matches collection in the store"""
        prefix = CollectionConstants.MATCHES_PREFIX
        return [
            name[len(prefix):] for name in await self.store.list_collections()
            if name.startswith(prefix) and len(name) > len(prefix)
        ]

    async def run(self, sports: Optional[Sequence[str]] = None) -> List[RecalculationReport]:
        """
        Recalculate sports one after another.

        Args:
            sports: Sports to process; defaults to Config.SPORTS, then to discovery

        Raises:
            RecalculationError: On the first sport that fails; later sports are not processed
        """
        sports = list(sports or Config.get_sports() or await self.discover_sports())
        if not sports:
            self.logger.warning("No sports found to recalculate")
            return []

        reports = []
        for sport in sports:
            try:
                reports.append(await self.recalculate_sport(sport))
            except Exception as e:
                self.logger.error(f"Recalculation failed for {sport}: {e}", exc_info=True)
                raise RecalculationError(sport, str(e)) from e
        return reports
