"""
Tests for kaplan_meier() matching R survival::survfit(Surv(time, event) ~ 1).

R reference code:
    library(survival)
    fit <- survfit(Surv(time, event) ~ 1, data=...)
    summary(fit)
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from hazardtrend.survival import (
    KMSolution,
    StratifiedKMSolution,
    SubjectStore,
    coxph,
    kaplan_meier,
)


def _store(time, event, arm=None):
    time = np.asarray(time, dtype=np.float64)
    if arm is None:
        arm = np.zeros(len(time))
    return SubjectStore.from_arrays(time, event, arm)


# ── Fixtures ─────────────────────────────────────────────────────────

# Classic textbook: 6 subjects, 2 censored
# R:
#   time <- c(1, 2, 3, 4, 5, 6)
#   event <- c(1, 0, 1, 0, 1, 1)
#   survfit(Surv(time, event) ~ 1)
BASIC_TIME = np.array([1, 2, 3, 4, 5, 6], dtype=np.float64)
BASIC_EVENT = np.array([1, 0, 1, 0, 1, 1], dtype=np.float64)


class TestKaplanMeierBasic:
    """Product-limit steps and risk-set bookkeeping."""

    def test_basic_survival_curve(self):
        """
        R:
            summary(survfit(Surv(time, event) ~ 1))
            # time n.risk n.event survival std.err
            #    1      6       1    0.833   0.152
            #    3      4       1    0.625   0.196
            #    5      2       1    0.312   0.226
            #    6      1       1    0.000     NaN
        """
        result = kaplan_meier(_store(BASIC_TIME, BASIC_EVENT))

        assert isinstance(result, KMSolution)
        assert result.n_observations == 6
        assert result.n_events_total == 4
        assert_allclose(result.time, [1, 3, 5, 6])
        assert_allclose(result.n_risk, [6, 4, 2, 1])
        assert_allclose(result.n_events, [1, 1, 1, 1])
        assert_allclose(result.survival, [5/6, 5/8, 5/16, 0.0], rtol=1e-10)

    def test_censored_between_steps(self):
        """Censoring at 2 and 4 reduces the next risk set only."""
        result = kaplan_meier(_store(BASIC_TIME, BASIC_EVENT))
        assert_allclose(result.n_censored, [0, 1, 1, 0])

    def test_tied_events_form_one_step(self):
        """
        R:
            time <- c(1, 1, 2, 2, 3); event <- rep(1, 5)
            # S(1)=0.6, S(2)=0.2, S(3)=0
        """
        result = kaplan_meier(_store([1, 1, 2, 2, 3], np.ones(5)))
        assert_allclose(result.time, [1, 2, 3])
        assert_allclose(result.n_events, [2, 2, 1])
        assert_allclose(result.n_risk, [5, 3, 1])
        assert_allclose(result.survival, [3/5, 1/5, 0.0], rtol=1e-10)

    def test_censoring_tied_with_event_stays_at_risk(self):
        result = kaplan_meier(_store([1, 1, 2, 2, 3], [1, 0, 1, 0, 1]))
        assert_allclose(result.n_risk, [5, 3, 1])

    def test_all_censored_gives_empty_curve(self):
        result = kaplan_meier(_store([1, 2, 3], np.zeros(3)))
        assert result.n_events_total == 0
        assert len(result.time) == 0
        assert result.median_survival is None

    def test_survival_monotone(self):
        rng = np.random.default_rng(7)
        time = rng.exponential(10.0, size=150) + 0.01
        event = (rng.uniform(size=150) < 0.7).astype(float)
        result = kaplan_meier(_store(time, event))
        assert np.all(np.diff(result.survival) <= 0)
        assert np.all((result.survival >= 0) & (result.survival <= 1))

    def test_points(self):
        result = kaplan_meier(_store(BASIC_TIME, BASIC_EVENT))
        first = result.points()[0]
        assert first[0] == 1.0
        assert first[1] == pytest.approx(5/6)
        assert first[2] == 6
        assert first[3] == 1
        assert first[4] == pytest.approx((5/6) ** 2 / 30)


class TestGreenwood:

    def test_first_step(self):
        """Var(S(1)) = (5/6)^2 * 1/(6*5)."""
        result = kaplan_meier(_store(BASIC_TIME, BASIC_EVENT))
        assert result.variance[0] == pytest.approx((5/6) ** 2 / 30, rel=1e-10)
        assert result.se[0] == pytest.approx(np.sqrt((5/6) ** 2 / 30), rel=1e-10)

    def test_last_subject_event_keeps_variance_finite(self):
        """n == d contributes nothing; variance stays finite and >= 0."""
        result = kaplan_meier(_store(BASIC_TIME, BASIC_EVENT))
        assert np.all(np.isfinite(result.variance))
        assert np.all(result.variance >= 0)
        assert result.variance[-1] == 0.0

    def test_single_subject_event(self):
        result = kaplan_meier(_store([5.0], [1.0]))
        assert_allclose(result.survival, [0.0])
        assert_allclose(result.variance, [0.0])


class TestConfidenceIntervals:

    @pytest.mark.parametrize("conf_type", ["log", "plain", "log-log"])
    def test_bounds_bracket_estimate(self, conf_type):
        result = kaplan_meier(_store(BASIC_TIME, BASIC_EVENT), conf_type=conf_type)
        assert result.conf_type == conf_type
        mask = (result.survival > 0) & (result.survival < 1)
        assert np.all(result.ci_lower[mask] <= result.survival[mask] + 1e-12)
        assert np.all(result.ci_upper[mask] >= result.survival[mask] - 1e-12)
        assert np.all(result.ci_lower >= 0)
        assert np.all(result.ci_upper <= 1)

    def test_narrower_at_lower_level(self):
        store = _store(BASIC_TIME, BASIC_EVENT)
        r95 = kaplan_meier(store, conf_level=0.95)
        r80 = kaplan_meier(store, conf_level=0.80)
        mask = (r95.survival > 0) & (r95.survival < 1)
        width_95 = r95.ci_upper[mask] - r95.ci_lower[mask]
        width_80 = r80.ci_upper[mask] - r80.ci_lower[mask]
        assert np.all(width_80 <= width_95 + 1e-12)

    def test_invalid_conf_level(self):
        from hazardtrend.core.exceptions import ValidationError
        with pytest.raises(ValidationError):
            kaplan_meier(_store(BASIC_TIME, BASIC_EVENT), conf_level=95)

    def test_invalid_conf_type(self):
        with pytest.raises(ValueError, match="conf_type"):
            kaplan_meier(_store(BASIC_TIME, BASIC_EVENT), conf_type="logit")


class TestCurveQueries:

    def test_evaluate_step_lookup(self):
        result = kaplan_meier(_store(BASIC_TIME, BASIC_EVENT))
        assert_allclose(
            result.evaluate([0.5, 1.0, 2.5, 3.0, 5.5, 10.0]),
            [1.0, 5/6, 5/6, 5/8, 5/16, 0.0],
        )

    def test_cumulative_incidence(self):
        result = kaplan_meier(_store(BASIC_TIME, BASIC_EVENT))
        assert_allclose(result.cumulative_incidence(), 1.0 - result.survival)
        assert_allclose(result.cumulative_incidence([0.5, 3.0]), [0.0, 3/8])

    def test_cloglog_drops_degenerate_points(self):
        result = kaplan_meier(_store(BASIC_TIME, BASIC_EVENT))
        log_t, loglog = result.cloglog()
        # S(6) = 0 has no complementary log-log value.
        assert_allclose(log_t, np.log([1, 3, 5]))
        assert_allclose(loglog, np.log(-np.log([5/6, 5/8, 5/16])))

    def test_median(self):
        result = kaplan_meier(_store(BASIC_TIME, BASIC_EVENT))
        assert result.median_survival == pytest.approx(5.0)

    def test_summary_and_repr(self):
        result = kaplan_meier(_store(BASIC_TIME, BASIC_EVENT))
        text = result.summary()
        assert "n=6" in text
        assert "median survival = 5" in text
        assert "KMSolution" in repr(result)


class TestByArm:

    def test_strata(self):
        store = _store(
            [2, 4, 6, 8, 3, 5, 7, 9],
            [1, 1, 0, 1, 1, 0, 1, 1],
            [0, 0, 0, 0, 1, 1, 1, 1],
        )
        result = kaplan_meier(store, by_arm=True)
        assert isinstance(result, StratifiedKMSolution)
        assert result.arms == (0, 1)
        assert_allclose(result[0].time, [2, 4, 8])
        assert_allclose(result[1].time, [3, 7, 9])
        assert_allclose(result[0].survival, [3/4, 1/2, 0.0])

    def test_single_arm_present(self):
        result = kaplan_meier(_store([1, 2, 3], [1, 1, 1]), by_arm=True)
        assert result.arms == (0,)
        with pytest.raises(KeyError):
            result[1]

    def test_evaluate_per_arm(self, waning_trial):
        result = kaplan_meier(waning_trial, by_arm=True)
        at_12 = result.evaluate([12.0])
        # Treatment protects before month 12.
        assert at_12[1][0] > at_12[0][0]
        assert_allclose(at_12[0], np.exp(-0.06 * 12), atol=0.02)
        assert_allclose(at_12[1], np.exp(-0.024 * 12), atol=0.02)


class TestRepeatability:
    """Refitting the same store gives identical output and leaves it unchanged."""

    def test_km_refit_identical(self, waning_trial):
        before = waning_trial.time.copy()
        first = kaplan_meier(waning_trial)
        second = kaplan_meier(waning_trial)
        for name in ("time", "survival", "n_risk", "n_events", "variance",
                     "ci_lower", "ci_upper"):
            assert_array_equal(getattr(first, name), getattr(second, name))
        assert_array_equal(waning_trial.time, before)

    def test_cox_refit_identical(self, waning_trial):
        first = coxph(waning_trial)
        second = coxph(waning_trial)
        assert first.coefficient == second.coefficient
        assert first.standard_error == second.standard_error
        assert first.loglik == second.loglik
        assert first.n_events == second.n_events
