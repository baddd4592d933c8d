import pytest

from ladder.data_models.records import MatchRecord, RoomRecord
from ladder.database.store import DocumentSnapshot
from ladder.services.standings import StandingsAggregator, StandingsService
from ladder.utils.exceptions import RoomNotFoundError

# Ann's results against Ben, oldest first
RESULTS = [True, True, False, True, True, True]


def match_documents(results, room_id='r1'):
    documents = []
    ann, ben = 1000, 1000
    for day, ann_won in enumerate(results, start=1):
        ann_delta, ben_delta = (10, -8) if ann_won else (-8, 10)
        ann, ben = ann + ann_delta, ben + ben_delta
        documents.append((f'm{day}', {
            'roomId': room_id,
            'tsIso': f'2025-01-{day:02d}T10:00:00.000Z',
            'player1Id': 'ann',
            'player2Id': 'ben',
            'player1': {'name': 'Ann', 'scores': 11 if ann_won else 5,
                        'roomAddedPoints': ann_delta, 'roomNewRating': ann},
            'player2': {'name': 'Ben', 'scores': 5 if ann_won else 11,
                        'roomAddedPoints': ben_delta, 'roomNewRating': ben},
        }))
    return documents


def to_records(documents):
    return [
        MatchRecord.from_document(DocumentSnapshot('matches-pingpong', doc_id, data, sequence), 'pingpong')
        for sequence, (doc_id, data) in enumerate(documents, start=1)
    ]


def room_document(mode='office'):
    return {
        'name': 'Office',
        'mode': mode,
        'members': [
            {'userId': 'ann', 'name': 'Ann', 'rating': 1042, 'wins': 5, 'losses': 1},
            {'userId': 'ben', 'name': 'Ben', 'rating': 970, 'wins': 1, 'losses': 5},
            {'userId': 'cat', 'name': 'Cat', 'rating': 1200},
        ],
    }


def make_room(mode='office'):
    return RoomRecord.from_document(DocumentSnapshot('rooms-pingpong', 'r1', room_document(mode)))


@pytest.fixture
def matches():
    # Newest first to make sure chronological order is restored
    return to_records(list(reversed(match_documents(RESULTS))))


class TestPlayerStandings:
    def test_streaks_and_totals(self, matches):
        standings = StandingsAggregator().player_standings(make_room(), matches, 'ann')
        assert standings.matches_played == 6
        assert (standings.wins, standings.losses) == (5, 1)
        assert standings.current_streak == 3
        assert standings.streak_display == "W3"
        assert standings.longest_win_streak == 3
        assert standings.longest_loss_streak == 1
        assert standings.total_local_points == 42
        assert standings.average_local_delta == 7.0
        assert standings.win_rate == pytest.approx(5 / 6 * 100)

    def test_losing_side(self, matches):
        standings = StandingsAggregator().player_standings(make_room(), matches, 'ben')
        assert standings.current_streak == -3
        assert standings.streak_display == "L3"
        assert standings.longest_loss_streak == 3
        assert standings.longest_win_streak == 1
        assert standings.total_local_points == -30

    def test_form_is_most_recent_first(self, matches):
        standings = StandingsAggregator(form_window=5).player_standings(make_room(), matches, 'ann')
        assert [entry.result for entry in standings.form] == ['W', 'W', 'W', 'L', 'W']
        latest = standings.form[0]
        assert latest.match_id == 'm6'
        assert latest.opponent_id == 'ben'
        assert latest.opponent_name == 'Ben'
        assert latest.score == "11-5"
        assert latest.local_delta == 10
        assert standings.form[3].score == "5-11"

    def test_visibility_threshold_hides_rating_only(self, matches):
        aggregator = StandingsAggregator(visibility_threshold=7)
        standings = aggregator.player_standings(make_room(), matches, 'ann')
        assert standings.visible_rating is None
        assert standings.rating == 1042

        visible = StandingsAggregator(visibility_threshold=5).player_standings(make_room(), matches, 'ann')
        assert visible.visible_rating == 1042

    def test_player_without_matches(self, matches):
        standings = StandingsAggregator().player_standings(make_room(), matches, 'cat')
        assert standings.matches_played == 0
        assert standings.win_rate == 0
        assert standings.current_streak == 0
        assert standings.visible_rating is None
        assert standings.form == []
        assert standings.average_local_delta == 0.0

    def test_other_rooms_are_ignored(self, matches):
        elsewhere = to_records(match_documents([False] * 3, room_id='r2'))
        standings = StandingsAggregator().player_standings(make_room(), matches + elsewhere, 'ann')
        assert standings.matches_played == 6


class TestRoomStandings:
    def test_visible_players_first(self, matches):
        standings = StandingsAggregator().room_standings(make_room(), matches)
        assert [s.player_id for s in standings] == ['ann', 'ben', 'cat']
        assert standings[2].rating == 1200
        assert not standings[2].is_rating_visible


class TestSeasonRanking:
    def test_office_ranks_by_adjusted_points(self, matches):
        rows = StandingsAggregator().rank_season(make_room('office'), matches)
        assert [(row.user_id, row.place) for row in rows] == [('ann', 1), ('ben', 2), ('cat', 3)]
        ann = rows[0]
        assert ann.adj_points == pytest.approx(42.0)
        assert ann.longest_win_streak == 3
        assert ann.room_rating == 1042
        assert rows[2].matches_played == 0

    def test_adjusted_points_scale_with_match_count(self):
        documents = match_documents([True, True, True])
        documents.append(('extra', {
            'roomId': 'r1', 'tsIso': '2025-02-01T10:00:00.000Z',
            'player1Id': 'cat', 'player2Id': 'ben',
            'player1': {'name': 'Cat', 'scores': 11, 'roomAddedPoints': 12},
            'player2': {'name': 'Ben', 'scores': 2, 'roomAddedPoints': -10},
        }))
        rows = {row.user_id: row for row in StandingsAggregator().rank_season(make_room(), to_records(documents))}
        # Average is 8 / 3 matches per player
        assert rows['ann'].adj_points == pytest.approx(30 * (3 / (8 / 3)) ** 0.5)
        assert rows['cat'].adj_points == pytest.approx(12 * (1 / (8 / 3)) ** 0.5)

    def test_arcade_ranks_by_wins(self, matches):
        rows = StandingsAggregator().rank_season(make_room('arcade'), matches)
        assert rows[0].user_id == 'ann'
        assert rows[0].wins == 5

    def test_professional_ranks_by_rating(self):
        # Ann ends at 994, Ben at 1012
        rows = StandingsAggregator().rank_season(make_room('professional'), to_records(match_documents([True, False, False])))
        assert [row.user_id for row in rows] == ['ben', 'ann', 'cat']
        assert rows[0].room_rating == 1012


class TestStandingsService:
    def test_loads_room_and_matches(self, run_with_db):
        async def scenario(db):
            await db.seed('rooms-pingpong', {'r1': room_document()})
            await db.seed('matches-pingpong', dict(match_documents(RESULTS)))
            await db.seed('matches-pingpong', {'x1': dict(match_documents([False])[0][1], roomId='r2')})
            service = StandingsService(db)
            return (
                await service.get_room_standings('pingpong', 'r1'),
                await service.get_player_standings('pingpong', 'r1', 'ann'),
                await service.get_season_rows('pingpong', 'r1'),
            )

        standings, ann, rows = run_with_db(scenario)
        assert [s.player_id for s in standings] == ['ann', 'ben', 'cat']
        assert ann.matches_played == 6
        assert rows[0].user_id == 'ann'

    def test_missing_room(self, run_with_db):
        async def scenario(db):
            with pytest.raises(RoomNotFoundError):
                await StandingsService(db).get_room_standings('pingpong', 'nope')

        run_with_db(scenario)
