from datetime import datetime, timezone

import pytest

from ladder.operations.match_recorder import MatchRecorder, MatchRow
from ladder.utils.elo import LocalRatingPolicy
from ladder.utils.exceptions import MatchValidationError

START = datetime(2025, 8, 16, 7, 0, 0, tzinfo=timezone.utc)


def fixed_clock():
    return START


def room_document(mode='office', is_ranked=True, members=None):
    return {
        'name': 'Office',
        'mode': mode,
        'kFactor': 32,
        'isRanked': is_ranked,
        'members': members or [],
    }


async def seed(db, sport='pingpong', room=None, users=None):
    await db.seed('users', users or {
        'u1': {'name': 'Alice', 'sports': {sport: {'globalElo': 1000, 'wins': 0, 'losses': 0}}},
        'u2': {'name': 'Bob', 'sports': {sport: {'globalElo': 1000, 'wins': 0, 'losses': 0}}},
    })
    await db.seed(f'rooms-{sport}', {'r1': room or room_document()})


async def record(db, rows, sport='pingpong', policy=LocalRatingPolicy.INDEPENDENT, **kwargs):
    recorder = MatchRecorder(db, policy=policy, clock=fixed_clock)
    return await recorder.record_matches(sport, 'r1', 'u1', 'u2', rows, **kwargs)


async def load(db, sport='pingpong'):
    users = {snap.id: snap.data for snap in await db.query('users')}
    room = (await db.get_by_id(f'rooms-{sport}', 'r1')).data
    matches = [snap.data for snap in await db.query(f'matches-{sport}')]
    return users, room, matches


class TestRankedOfficeRoom:
    def test_single_win(self, run_with_db):
        async def scenario(db):
            await seed(db)
            result = await record(db, [(11, 5)])
            return result, await load(db)

        result, (users, room, matches) = run_with_db(scenario)
        assert result
        assert result.player1_rating == 1016
        assert result.player2_rating == 984

        alice = users['u1']['sports']['pingpong']
        bob = users['u2']['sports']['pingpong']
        assert alice['globalElo'] == 1016
        assert alice['wins'] == 1 and alice['losses'] == 0
        assert alice['eloHistory'] == [{'ts': '2025-08-16T07:00:00.000Z', 'elo': 1016}]
        assert bob['globalElo'] == 984
        assert bob['losses'] == 1

        members = {m['userId']: m for m in room['members']}
        assert members['u1']['rating'] == 1016
        assert members['u2']['rating'] == 987
        assert members['u1']['wins'] == 1
        assert members['u2']['losses'] == 1

        assert len(matches) == 1
        match = matches[0]
        assert match['winner'] == 'Alice'
        assert match['isRanked'] is True
        assert match['players'] == ['u1', 'u2']
        assert match['tsIso'] == '2025-08-16T07:00:00.000Z'
        assert match['player1']['addedPoints'] == 16
        assert match['player1']['roomAddedPoints'] == 16
        assert match['player2']['addedPoints'] == -16
        assert match['player2']['roomAddedPoints'] == -13
        assert match['player2']['roomOldRating'] == 1000

    def test_equal_scores_count_as_player1_win(self, run_with_db):
        async def scenario(db):
            await seed(db)
            result = await record(db, [(11, 11)])
            return result, await load(db)

        result, (users, room, matches) = run_with_db(scenario)
        assert result
        assert result.player1_rating == 1016
        assert result.player2_rating == 984
        assert matches[0]['winner'] == 'Alice'
        assert users['u1']['sports']['pingpong']['wins'] == 1
        assert users['u2']['sports']['pingpong']['losses'] == 1
        members = {m['userId']: m for m in room['members']}
        assert members['u1']['wins'] == 1
        assert members['u2']['losses'] == 1

    def test_rows_carry_running_ratings(self, run_with_db):
        async def scenario(db):
            await seed(db)
            result = await record(db, [(11, 5), MatchRow(11, 9)])
            return result, await load(db)

        result, (users, room, matches) = run_with_db(scenario)
        assert result.player1_rating == 1031
        assert result.player2_rating == 969
        assert [m['player1']['oldRating'] for m in matches] == [1000, 1016]
        assert [m['tsIso'] for m in matches] == ['2025-08-16T07:00:00.000Z', '2025-08-16T07:00:01.000Z']
        assert [e['elo'] for e in users['u1']['sports']['pingpong']['eloHistory']] == [1016, 1031]
        assert users['u1']['sports']['pingpong']['wins'] == 2

    def test_existing_member_state_is_used(self, run_with_db):
        members = [
            {'userId': 'u1', 'name': 'Alice', 'rating': 1100, 'wins': 4, 'losses': 1, 'role': 'admin'},
            {'userId': 'u2', 'name': 'Bob', 'rating': 900, 'wins': 1, 'losses': 4},
        ]

        async def scenario(db):
            await seed(db, room=room_document(members=members))
            result = await record(db, [(11, 5)])
            return result, await load(db)

        result, (_, room, _) = run_with_db(scenario)
        assert result.player1_local_rating == 1108
        assert result.player2_local_rating == 894
        alice = room['members'][0]
        assert alice['role'] == 'admin'
        assert alice['wins'] == 5

    def test_lockstep_policy_follows_global_delta(self, run_with_db):
        members = [
            {'userId': 'u1', 'name': 'Alice', 'rating': 1100},
            {'userId': 'u2', 'name': 'Bob', 'rating': 900},
        ]

        async def scenario(db):
            await seed(db, room=room_document(members=members))
            return await record(db, [(11, 5)], policy=LocalRatingPolicy.LOCKSTEP)

        result = run_with_db(scenario)
        assert result.player1_local_rating == 1116
        assert result.player2_local_rating == 887


class TestUnrankedRooms:
    def test_arcade_unranked_never_changes_ratings(self, run_with_db):
        async def scenario(db):
            await seed(db, room=room_document(mode='arcade', is_ranked=False))
            result = await record(db, [(11, 5), (3, 11), (11, 0)])
            return result, await load(db)

        result, (users, room, matches) = run_with_db(scenario)
        assert result
        for user_id in ('u1', 'u2'):
            profile = users[user_id]['sports']['pingpong']
            assert profile['globalElo'] == 1000
            assert 'eloHistory' not in profile
        assert all(m['rating'] == 1000 for m in room['members'])
        assert all(m['isRanked'] is False for m in matches)
        assert all(m['player1']['roomAddedPoints'] == 0 for m in matches)
        assert users['u1']['sports']['pingpong']['wins'] == 2

    def test_unranked_office_moves_local_only(self, run_with_db):
        async def scenario(db):
            await seed(db, room=room_document(is_ranked=False))
            result = await record(db, [(11, 5)])
            return result, await load(db)

        result, (users, room, _) = run_with_db(scenario)
        assert result.player1_rating == 1000
        assert result.player1_local_rating == 1016
        assert result.player2_local_rating == 987


class TestTennisStats:
    def test_stats_are_recorded_and_aggregated(self, run_with_db):
        async def scenario(db):
            await seed(db, sport='tennis')
            rows = [
                {'score1': 6, 'score2': 3, 'stats1': {'aces': 3, 'winners': 10}, 'stats2': {'doubleFaults': 2}},
                {'score1': 4, 'score2': 6, 'stats1': {'aces': 1}, 'stats2': {'aces': 2}},
            ]
            result = await record(db, rows, sport='tennis')
            return result, await load(db, sport='tennis')

        result, (users, _, matches) = run_with_db(scenario)
        assert result
        alice = users['u1']['sports']['tennis']
        bob = users['u2']['sports']['tennis']
        assert alice['aces'] == 4
        assert alice['winners'] == 10
        assert alice['doubleFaults'] == 0
        assert bob['aces'] == 2
        assert bob['doubleFaults'] == 2
        assert matches[0]['player1']['aces'] == 3
        assert matches[0]['player2']['winners'] == 0
        assert alice['wins'] == 1 and alice['losses'] == 1

    def test_stat_values_are_stored_as_integers(self, run_with_db):
        async def scenario(db):
            await seed(db, sport='tennis')
            rows = [(6, 2, {'aces': '3', 'winners': 4.0}, {'doubleFaults': None})]
            result = await record(db, rows, sport='tennis')
            return result, await load(db, sport='tennis')

        result, (users, _, matches) = run_with_db(scenario)
        assert result
        assert matches[0]['player1']['aces'] == 3
        assert matches[0]['player1']['winners'] == 4
        assert matches[0]['player2']['doubleFaults'] == 0
        assert users['u1']['sports']['tennis']['aces'] == 3


class TestMatchRow:
    def test_coerce_parses_scores_and_stats(self):
        row = MatchRow.coerce({'score1': '11', 'score2': 7.0, 'stats1': {'aces': '2'}})
        assert (row.score1, row.score2) == (11, 7)
        assert row.stats1 == {'aces': 2}
        assert row.stats2 == {}

    def test_coerce_rejects_bad_stats(self):
        with pytest.raises(MatchValidationError):
            MatchRow.coerce((6, 2, {'aces': 'many'}))
        with pytest.raises(MatchValidationError):
            MatchRow.coerce((6, 2, {}, {'aces': -1}))


class TestFailures:
    def test_missing_room(self, run_with_db):
        async def scenario(db):
            await seed(db)
            recorder = MatchRecorder(db, policy=LocalRatingPolicy.INDEPENDENT, clock=fixed_clock)
            result = await recorder.record_matches('pingpong', 'nope', 'u1', 'u2', [(11, 5)])
            return result, await db.query('matches-pingpong')

        result, matches = run_with_db(scenario)
        assert not result
        assert 'Room not found' in result.message
        assert matches == []

    def test_missing_player(self, run_with_db):
        async def scenario(db):
            await seed(db, users={'u1': {'name': 'Alice'}})
            return await record(db, [(11, 5)])

        result = run_with_db(scenario)
        assert not result
        assert result.message == "One or more players could not be found."

    def test_invalid_rows(self, run_with_db):
        async def scenario(db):
            await seed(db)
            return (
                await record(db, []),
                await record(db, [(11, -1)]),
                await record(db, [('eleven', 5)]),
            )

        empty, negative, text = run_with_db(scenario)
        assert not empty and not negative and not text

    def test_same_player_twice(self, run_with_db):
        async def scenario(db):
            await seed(db)
            recorder = MatchRecorder(db, policy=LocalRatingPolicy.INDEPENDENT, clock=fixed_clock)
            return await recorder.record_matches('pingpong', 'r1', 'u1', 'u1', [(11, 5)])

        assert not run_with_db(scenario)

    def test_failure_writes_nothing(self, run_with_db):
        async def scenario(db):
            await seed(db)
            await record(db, [(11, 5), (11, 'x')])
            return await load(db)

        users, room, matches = run_with_db(scenario)
        assert matches == []
        assert users['u1']['sports']['pingpong']['globalElo'] == 1000
        assert room['members'] == []
