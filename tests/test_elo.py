import math

import pytest

from ladder.utils.elo import (
    EloCalculator, LocalRatingPolicy, RatingScope, RoomMode, round_half_up
)

RATING_PAIRS = [(1000, 1000), (1200, 1000), (1000, 1350), (1500, 900), (987, 1013)]


class TestExpectedScore:
    def test_equal_ratings(self):
        assert EloCalculator.calculate_expected_score(1000, 1000) == 0.5

    def test_expected_scores_sum_to_one(self):
        a = EloCalculator.calculate_expected_score(1200, 1000)
        b = EloCalculator.calculate_expected_score(1000, 1200)
        assert math.isclose(a + b, 1.0)
        assert a > 0.5


class TestRounding:
    def test_halves_round_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(-2.5) == -2

    def test_regular_values(self):
        assert round_half_up(-12.8) == -13
        assert round_half_up(7.4) == 7


class TestGlobalDelta:
    def test_equal_ratings_ranked_win(self):
        assert EloCalculator.calculate_match_deltas(1000, 1000, True) == (16, -16)

    @pytest.mark.parametrize("rating1,rating2", RATING_PAIRS)
    @pytest.mark.parametrize("player1_won", [True, False])
    def test_zero_sum(self, rating1, rating2, player1_won):
        delta1, delta2 = EloCalculator.calculate_match_deltas(rating1, rating2, player1_won)
        assert delta1 == -delta2

    def test_underdog_gains_more(self):
        underdog, favourite = EloCalculator.calculate_match_deltas(1000, 1350, True)
        assert underdog == 28
        assert favourite == -28

    def test_ignores_room_k_factor_and_mode(self):
        delta = EloCalculator.calculate_delta(
            1000, 1000, False, k_factor=64, scope=RatingScope.GLOBAL, mode=RoomMode.ARCADE
        )
        assert delta == -16


class TestLocalDelta:
    @pytest.mark.parametrize("rating1,rating2", RATING_PAIRS)
    @pytest.mark.parametrize("did_win", [True, False])
    def test_arcade_is_always_zero(self, rating1, rating2, did_win):
        assert EloCalculator.calculate_delta(
            rating1, rating2, did_win, 32, RatingScope.LOCAL, RoomMode.ARCADE
        ) == 0

    def test_office_dampens_losses(self):
        assert EloCalculator.calculate_delta(1000, 1000, False, 32, RatingScope.LOCAL, RoomMode.OFFICE) == -13

    def test_office_keeps_wins(self):
        assert EloCalculator.calculate_delta(1000, 1000, True, 32, RatingScope.LOCAL, RoomMode.OFFICE) == 16

    @pytest.mark.parametrize("rating1,rating2", RATING_PAIRS)
    @pytest.mark.parametrize("did_win", [True, False])
    def test_office_never_exceeds_raw(self, rating1, rating2, did_win):
        office = EloCalculator.calculate_delta(rating1, rating2, did_win, 32, RatingScope.LOCAL, RoomMode.OFFICE)
        raw = EloCalculator.calculate_delta(rating1, rating2, did_win, 32, RatingScope.LOCAL, RoomMode.PROFESSIONAL)
        assert abs(office) <= abs(raw)

    def test_professional_is_undamped(self):
        assert EloCalculator.calculate_delta(1000, 1000, False, 32, RatingScope.LOCAL, RoomMode.PROFESSIONAL) == -16

    def test_room_k_factor(self):
        assert EloCalculator.calculate_delta(1000, 1000, True, 64, RatingScope.LOCAL, RoomMode.PROFESSIONAL) == 32

    def test_missing_k_factor_uses_default(self):
        assert EloCalculator.calculate_delta(1000, 1000, True, None, RatingScope.LOCAL, RoomMode.PROFESSIONAL) == 16


class TestMalformedInput:
    def test_none_and_strings_become_zero(self):
        assert EloCalculator.calculate_delta(None, "abc", True) == 16

    def test_nan_and_inf_become_zero(self):
        assert EloCalculator.calculate_delta(float('nan'), float('inf'), False) == -16

    def test_bad_k_factor_gives_no_change(self):
        assert EloCalculator.calculate_delta(1000, 1000, True, "x", RatingScope.LOCAL, RoomMode.PROFESSIONAL) == 0


class TestLocalPolicies:
    def test_independent_scenario(self):
        deltas = EloCalculator.calculate_local_match_deltas(
            1000, 1000, True, 32, RoomMode.OFFICE, True, (16, -16), LocalRatingPolicy.INDEPENDENT
        )
        assert deltas == (16, -13)

    def test_independent_ignores_global_deltas(self):
        deltas = EloCalculator.calculate_local_match_deltas(
            1000, 1000, True, 32, RoomMode.OFFICE, True, (10, -10), LocalRatingPolicy.INDEPENDENT
        )
        assert deltas == (16, -13)

    def test_lockstep_follows_global_when_ranked(self):
        deltas = EloCalculator.calculate_local_match_deltas(
            1000, 1000, True, 32, RoomMode.OFFICE, True, (10, -10), LocalRatingPolicy.LOCKSTEP
        )
        assert deltas == (10, -8)

    def test_lockstep_is_independent_when_unranked(self):
        deltas = EloCalculator.calculate_local_match_deltas(
            1000, 1000, False, 32, RoomMode.PROFESSIONAL, False, (0, 0), LocalRatingPolicy.LOCKSTEP
        )
        assert deltas == (-16, 16)

    def test_lockstep_arcade_is_zero(self):
        deltas = EloCalculator.calculate_local_match_deltas(
            1000, 1000, True, 32, RoomMode.ARCADE, True, (16, -16), LocalRatingPolicy.LOCKSTEP
        )
        assert deltas == (0, 0)


class TestDetermineWinner:
    def test_higher_score_wins(self):
        assert EloCalculator.determine_winner(11, 5) is True
        assert EloCalculator.determine_winner(5, 11) is False

    def test_equal_scores_default_to_player1(self):
        assert EloCalculator.determine_winner(7, 7) is True
        assert EloCalculator.determine_winner(7, 7, "Alice", "Bob") is True

    def test_equal_scores_with_explicit_player2_winner(self):
        assert EloCalculator.determine_winner(7, 7, "Bob", "Bob") is False


class TestHelpers:
    def test_room_mode_coercion(self):
        assert RoomMode.coerce("ARCADE") == RoomMode.ARCADE
        assert RoomMode.coerce(None) == RoomMode.OFFICE
        assert RoomMode.coerce("tournament") == RoomMode.OFFICE

    def test_format_elo_change(self):
        assert EloCalculator.format_elo_change(16) == "+16"
        assert EloCalculator.format_elo_change(-13) == "-13"
        assert EloCalculator.format_elo_change(0) == "±0"
