"""
Standings service.

Derives read-only standings from a room's persisted matches: streaks, recent
form, averages, win rate and the visible rating. The stored local rating is
never changed here; below the visibility threshold the rating is only hidden.
"""

import math
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

from ladder.config import Config
from ladder.constants import CollectionConstants
from ladder.data_models.records import MatchRecord, RoomRecord
from ladder.data_models.standings import FormEntry, PlayerStandings, SeasonRow
from ladder.database.store import DocumentStore
from ladder.utils.elo import RoomMode
from ladder.utils.exceptions import RoomNotFoundError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


def _streaks(results: Sequence[bool]) -> Tuple[int, int, int]:
    """Return (current signed streak, longest win streak, longest loss streak)"""
    current = longest_win = longest_loss = 0
    for won in results:
        if won:
            current = current + 1 if current > 0 else 1
            longest_win = max(longest_win, current)
        else:
            current = current - 1 if current < 0 else -1
            longest_loss = max(longest_loss, -current)
    return current, longest_win, longest_loss


def _win_rate(wins: int, losses: int) -> float:
    total = wins + losses
    return wins / total * 100 if total > 0 else 0.0


@dataclass
class _SeasonTally:
    user_id: str
    name: str
    room_rating: int
    results: List[bool] = field(default_factory=list)
    total_added_points: int = 0

    @property
    def wins(self) -> int:
        return sum(1 for won in self.results if won)

    @property
    def losses(self) -> int:
        return len(self.results) - self.wins


class StandingsAggregator:
    """Pure standings derivation over one room's matches"""

    def __init__(self, visibility_threshold: Optional[int] = None, form_window: Optional[int] = None):
        self.visibility_threshold = (Config.RATING_VISIBILITY_THRESHOLD
                                     if visibility_threshold is None else visibility_threshold)
        self.form_window = Config.FORM_WINDOW if form_window is None else form_window

    def visible_rating(self, rating: int, total_matches: int) -> Optional[int]:
        """Rating to display, or None while the player has too few matches"""
        if total_matches < self.visibility_threshold:
            return None
        return rating

    @staticmethod
    def room_matches(room_id: str, matches: Sequence[MatchRecord]) -> List[MatchRecord]:
        """Complete matches of one room in chronological order"""
        return sorted(
            (m for m in matches if m.room_id == room_id and m.is_complete),
            key=lambda m: m.instant
        )

    def player_standings(self, room: RoomRecord, matches: Sequence[MatchRecord],
                         player_id: str) -> PlayerStandings:
        """
        Build one player's standings within a room.

        Args:
            room: Room the standings are for
            matches: Matches to consider; other rooms' matches are ignored
            player_id: Player to summarize

        Returns:
            PlayerStandings for the player
        """
        history = [m for m in self.room_matches(room.id, matches) if m.involves(player_id)]
        results = [match.winner_id == player_id for match in history]
        wins = sum(1 for won in results if won)
        losses = len(results) - wins
        current, longest_win, longest_loss = _streaks(results)

        local_deltas = [match.side_for(player_id).effective_local_delta for match in history]
        total_points = sum(local_deltas)
        average_delta = total_points / len(local_deltas) if local_deltas else 0.0

        member = room.member(player_id)
        if member is not None:
            name, rating = member.name, member.local_rating
        elif history:
            last_side = history[-1].side_for(player_id)
            name = last_side.name
            rating = last_side.effective_local_rating or Config.STARTING_RATING
        else:
            name, rating = player_id, Config.STARTING_RATING

        form = []
        for match, won in list(zip(history, results))[::-1][:self.form_window]:
            own = match.side_for(player_id)
            opponent = match.opponent_side_for(player_id)
            opponent_id = match.player2_id if player_id == match.player1_id else match.player1_id
            form.append(FormEntry(
                match_id=match.id,
                result='W' if won else 'L',
                opponent_id=opponent_id,
                opponent_name=opponent.name,
                score=f"{own.score}-{opponent.score}",
                local_delta=own.effective_local_delta,
                played_at=match.instant,
            ))

        return PlayerStandings(
            player_id=player_id,
            name=name,
            rating=rating,
            visible_rating=self.visible_rating(rating, len(history)),
            matches_played=len(history),
            wins=wins,
            losses=losses,
            win_rate=_win_rate(wins, losses),
            current_streak=current,
            longest_win_streak=longest_win,
            longest_loss_streak=longest_loss,
            form=form,
            average_local_delta=average_delta,
            total_local_points=total_points,
        )

    def room_standings(self, room: RoomRecord, matches: Sequence[MatchRecord]) -> List[PlayerStandings]:
        """Standings for every member and participant; visible ratings first, then by rating"""
        player_ids = [member.user_id for member in room.members]
        for match in self.room_matches(room.id, matches):
            for player_id in (match.player1_id, match.player2_id):
                if player_id not in player_ids:
                    player_ids.append(player_id)

        standings = [self.player_standings(room, matches, pid) for pid in player_ids]
        standings.sort(key=lambda s: (not s.is_rating_visible, -s.rating, s.name))
        return standings

    def rank_season(self, room: RoomRecord, matches: Sequence[MatchRecord]) -> List[SeasonRow]:
        """
        Rank a room's season.

        Points are the summed local deltas scaled by sqrt(matches / average
        matches). The ordering depends on the room mode:
        - professional: rating, win rate, wins
        - arcade: wins, win rate, matches played
        - office: adjusted points, rating, win rate
        Members without matches are listed last.
        """
        tallies: Dict[str, _SeasonTally] = {}
        for match in self.room_matches(room.id, matches):
            for player_id in (match.player1_id, match.player2_id):
                side = match.side_for(player_id)
                tally = tallies.get(player_id)
                if tally is None:
                    tally = tallies[player_id] = _SeasonTally(player_id, side.name, Config.STARTING_RATING)
                tally.results.append(match.winner_id == player_id)
                tally.total_added_points += side.effective_local_delta
                if side.effective_local_rating is not None:
                    tally.room_rating = side.effective_local_rating

        for member in room.members:
            if member.user_id not in tallies:
                tallies[member.user_id] = _SeasonTally(member.user_id, member.name, member.local_rating)

        played = [t for t in tallies.values() if t.results]
        average_matches = (sum(len(t.results) for t in played) / len(played)) if played else 1

        rows = []
        for tally in tallies.values():
            matches_played = len(tally.results)
            ratio = matches_played / average_matches
            factor = math.sqrt(ratio) if math.isfinite(ratio) and ratio > 0 else 0.0
            _, longest_win, _ = _streaks(tally.results)
            rows.append(SeasonRow(
                user_id=tally.user_id,
                name=tally.name,
                place=0,
                matches_played=matches_played,
                wins=tally.wins,
                losses=tally.losses,
                win_rate=_win_rate(tally.wins, tally.losses),
                total_added_points=tally.total_added_points,
                adj_points=tally.total_added_points * factor,
                longest_win_streak=longest_win,
                room_rating=tally.room_rating,
            ))

        if room.mode == RoomMode.PROFESSIONAL:
            def order(row):
                return (row.matches_played == 0, -row.room_rating, -row.win_rate, -row.wins)
        elif room.mode == RoomMode.ARCADE:
            def order(row):
                return (row.matches_played == 0, -row.wins, -row.win_rate, -row.matches_played)
        else:
            def order(row):
                return (row.matches_played == 0, -row.adj_points, -row.room_rating, -row.win_rate)

        rows.sort(key=order)
        return [replace(row, place=place) for place, row in enumerate(rows, start=1)]


class StandingsService:
    """Loads a room and its matches from the store and aggregates standings"""

    def __init__(self, store: DocumentStore, aggregator: Optional[StandingsAggregator] = None):
        self.store = store
        self.aggregator = aggregator or StandingsAggregator()

    async def _load(self, sport: str, room_id: str) -> Tuple[RoomRecord, List[MatchRecord]]:
        snapshot = await self.store.get_by_id(CollectionConstants.rooms(sport), room_id)
        if snapshot is None:
            raise RoomNotFoundError(room_id)
        match_snapshots = await self.store.query(
            CollectionConstants.matches(sport), filters=[('roomId', '==', room_id)]
        )
        matches = [MatchRecord.from_document(snap, sport) for snap in match_snapshots]
        logger.debug(f"Loaded {len(matches)} matches for room {room_id} ({sport})")
        return RoomRecord.from_document(snapshot), matches

    async def get_room_standings(self, sport: str, room_id: str) -> List[PlayerStandings]:
        room, matches = await self._load(sport, room_id)
        return self.aggregator.room_standings(room, matches)

    async def get_player_standings(self, sport: str, room_id: str, player_id: str) -> PlayerStandings:
        room, matches = await self._load(sport, room_id)
        return self.aggregator.player_standings(room, matches, player_id)

    async def get_season_rows(self, sport: str, room_id: str) -> List[SeasonRow]:
        room, matches = await self._load(sport, room_id)
        return self.aggregator.rank_season(room, matches)
