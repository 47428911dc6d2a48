"""
Tests for the walk-forward Backtester
"""

import pytest

from ssq_engine.backtester import DEFAULT_WEIGHT_CANDIDATES, Backtester


@pytest.fixture
def draws(make_draws):
    return make_draws(25, seed=3)


class TestBacktester:

    def test_report_counts(self, draws, tracker, config, rng):
        backtester = Backtester(draws, tracker, config=config, rng=rng)
        report = backtester.run(max_targets=3)

        per_target = 5 + 5 * len(DEFAULT_WEIGHT_CANDIDATES)
        assert report.targets == 3
        assert len(report.evaluations) == 3 * per_target
        assert report.winning_rates['statistical'].total == 15
        assert report.winning_rates['ml'].total == 15 * len(DEFAULT_WEIGHT_CANDIDATES)
        assert sum(report.method_weights.values()) == pytest.approx(1.0)
        assert report.optimal_weights is not None
        assert {e.period for e in report.evaluations} == {d.period for d in draws[-3:]}

    def test_training_never_sees_the_target(self, draws, tracker, config, rng, monkeypatch):
        backtester = Backtester(draws, tracker, config=config, rng=rng)
        seen = []
        analyze = backtester.analytics.analyze_draws

        def spy(records):
            seen.append([r.period for r in records])
            return analyze(records)

        monkeypatch.setattr(backtester.analytics, "analyze_draws", spy)
        backtester.run(max_targets=4)

        targets = [d.period for d in draws[-4:]]
        assert len(seen) == 4
        for periods, target in zip(seen, targets):
            assert max(periods) < target
            assert periods[-1] == draws[[d.period for d in draws].index(target) - 1].period

    def test_fixed_window(self, draws, tracker, config, rng, monkeypatch):
        backtester = Backtester(draws, tracker, config=config, rng=rng)
        sizes = []
        analyze = backtester.analytics.analyze_draws

        def spy(records):
            sizes.append(len(records))
            return analyze(records)

        monkeypatch.setattr(backtester.analytics, "analyze_draws", spy)
        report = backtester.run(window=10)

        assert report.targets == len(draws) - 10
        assert set(sizes) == {10}

    def test_window_below_minimum(self, draws, tracker, config, rng):
        with pytest.raises(ValueError):
            Backtester(draws, tracker, config=config, rng=rng).run(window=5)

    def test_evaluations_are_tracked_in_scope(self, draws, tracker, config, rng):
        Backtester(draws, tracker, config=config, rng=rng, scope='bt').run(max_targets=2)
        assert tracker.get_winning_rates(scope='bt')['ml'].total == 30
        assert tracker.get_winning_rates(scope='live')['ml'].total == 0

    def test_ml_evaluations_reference_profiles(self, draws, tracker, config, rng):
        report = Backtester(draws, tracker, config=config, rng=rng).run(max_targets=1)
        ml = [e for e in report.evaluations if e.method == 'ml']
        assert all(e.weight_profile_id is not None for e in ml)
        assert len({e.weight_profile_id for e in ml}) == len(DEFAULT_WEIGHT_CANDIDATES)

    def test_no_targets(self, make_draws, tracker, config, rng):
        report = Backtester(make_draws(10), tracker, config=config, rng=rng).run()
        assert report.targets == 0
        assert report.evaluations == []
        assert report.average_score == 0.0
        assert report.to_dict()['optimalWeights'] is None

    def test_one_profile_per_weight_candidate(self, draws, tracker, config, rng):
        report = Backtester(draws, tracker, config=config, rng=rng).run(max_targets=4)

        ml = [e for e in report.evaluations if e.method == 'ml']
        profile_ids = {e.weight_profile_id for e in ml}
        assert len(profile_ids) == len(DEFAULT_WEIGHT_CANDIDATES)
        for profile_id in profile_ids:
            assert sum(1 for e in ml if e.weight_profile_id == profile_id) == 4 * 5

        optimal = report.optimal_weights
        assert optimal.profile_id in profile_ids
        assert optimal.evaluations == 4 * 5
        assert any(optimal.weights.as_dict() == pytest.approx(w.normalized().as_dict())
                   for w in DEFAULT_WEIGHT_CANDIDATES)
