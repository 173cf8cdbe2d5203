"""
Tests for coxph() on the treatment-arm covariate.

Reference values come from direct evaluation of the partial likelihood
(one risk-set sum per event, no vectorisation) and from a scalar
optimiser applied to it.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose
from scipy.optimize import minimize_scalar

from hazardtrend.core.compute.tolerances import ITERATIVE
from hazardtrend.core.exceptions import (
    ConvergenceError,
    HazardTrendError,
    InsufficientEventsError,
    ValidationError,
)
from hazardtrend.survival import CoxSolution, SubjectStore, coxph
from hazardtrend.survival._cox import RiskSets, concordance


def partial_loglik(beta, time, event, arm, ties="breslow"):
    """Partial log-likelihood evaluated event time by event time."""
    total = 0.0
    for t in np.unique(time[event == 1]):
        dying = (time == t) & (event == 1)
        at_risk = time >= t
        risk_sum = np.sum(np.exp(beta * arm[at_risk]))
        dying_sum = np.sum(np.exp(beta * arm[dying]))
        d = int(np.sum(dying))
        total += beta * np.sum(arm[dying])
        for s in range(d):
            frac = s / d if ties == "efron" else 0.0
            total -= np.log(risk_sum - frac * dying_sum)
    return total


# ── Fixtures ─────────────────────────────────────────────────────────

# Tied event times across both arms.
TIED_TIME = np.array([1, 1, 2, 2, 3, 3, 4, 4, 5, 6], dtype=np.float64)
TIED_EVENT = np.array([1, 1, 1, 1, 1, 0, 1, 1, 0, 1], dtype=np.float64)
TIED_ARM = np.array([0, 1, 0, 1, 0, 1, 1, 0, 1, 1], dtype=np.float64)

# Every control subject fails before any treated subject: monotone
# likelihood, the estimate diverges to -inf.
#   R: coxph(Surv(time, event) ~ x) reports coef=-22, se=21603
SEPARATED_TIME = np.array([1, 2, 3, 4, 5, 6, 7, 8, 9, 10], dtype=np.float64)
SEPARATED_EVENT = np.array([1, 1, 1, 0, 1, 1, 0, 1, 1, 1], dtype=np.float64)
SEPARATED_ARM = np.array([0, 0, 0, 0, 0, 1, 1, 1, 1, 1], dtype=np.float64)


class TestCoxBasic:

    def test_returns_solution(self, ph_trial):
        fit = coxph(ph_trial)
        assert isinstance(fit, CoxSolution)
        assert fit.converged is True
        assert fit.ties == "breslow"
        assert fit.n_observations == 200
        assert fit.n_events == ph_trial.n_events
        assert fit.covariance.shape == (1, 1)

    def test_recovers_generating_hazard_ratio(self, ph_trial):
        """Hazards 0.03 vs 0.05 give HR 0.6."""
        fit = coxph(ph_trial)
        assert_allclose(fit.hazard_ratio, 0.6, rtol=0.1)

    def test_matches_scalar_maximisation(self, ph_trial):
        time, event, arm = ph_trial.time, ph_trial.event, ph_trial.arm
        brute = minimize_scalar(
            lambda b: -partial_loglik(b, time, event, arm),
            bracket=(-2.0, 0.0),
        )
        fit = coxph(ph_trial)
        assert_allclose(fit.coefficient, brute.x, atol=1e-6)
        assert_allclose(
            fit.log_likelihood, partial_loglik(fit.coefficient, time, event, arm),
            rtol=1e-10,
        )

    def test_null_loglik(self, ph_trial):
        fit = coxph(ph_trial)
        expected = partial_loglik(0.0, ph_trial.time, ph_trial.event, ph_trial.arm)
        assert_allclose(fit.loglik[0], expected, rtol=1e-10)
        assert fit.loglik[1] > fit.loglik[0]

    def test_score_zero_at_estimate(self, ph_trial):
        fit = coxph(ph_trial)
        assert_allclose(fit.score, 0.0, atol=1e-6)

    def test_standard_error_from_curvature(self, ph_trial):
        """SE = sqrt(-1 / l''(beta)), l'' by central differences."""
        time, event, arm = ph_trial.time, ph_trial.event, ph_trial.arm
        fit = coxph(ph_trial)
        b, h = fit.coefficient, 1e-4
        second = (
            partial_loglik(b + h, time, event, arm)
            - 2 * partial_loglik(b, time, event, arm)
            + partial_loglik(b - h, time, event, arm)
        ) / h ** 2
        assert_allclose(fit.standard_error, np.sqrt(-1.0 / second), rtol=1e-4)
        assert_allclose(fit.variance, fit.standard_error ** 2)


class TestDerivedQuantities:

    def test_conf_int(self, ph_trial):
        fit = coxph(ph_trial)
        lower, upper = fit.conf_int()
        assert lower < fit.hazard_ratio < upper
        assert_allclose(
            np.log([lower, upper]),
            fit.coefficient + np.array([-1, 1]) * 1.959963984540054 * fit.standard_error,
        )

    def test_conf_int_narrows_with_level(self, ph_trial):
        fit = coxph(ph_trial)
        lo90, hi90 = fit.conf_int(0.90)
        lo95, hi95 = fit.conf_int(0.95)
        assert lo95 < lo90 and hi90 < hi95

    def test_wald_test(self, ph_trial):
        fit = coxph(ph_trial)
        assert_allclose(fit.z_statistic, fit.coefficient / fit.standard_error)
        assert fit.z_statistic < 0
        assert 0 < fit.p_value < 0.05

    def test_likelihood_ratio_test(self, ph_trial):
        fit = coxph(ph_trial)
        statistic, df, p = fit.likelihood_ratio_test()
        assert df == 1
        assert_allclose(statistic, 2 * (fit.loglik[1] - fit.loglik[0]))
        assert p < 0.05

    def test_concordance_above_half(self, ph_trial):
        """Treatment lengthens survival, so the fitted risk ranks well."""
        fit = coxph(ph_trial)
        assert 0.5 < fit.concordance < 1.0

    def test_summary(self, ph_trial):
        fit = coxph(ph_trial)
        text = fit.summary()
        assert "exp(coef)" in text
        assert "Concordance" in text
        assert "hr=" in repr(fit)


class TestTies:

    def test_efron_equals_breslow_without_ties(self, ph_trial):
        breslow = coxph(ph_trial, ties="breslow")
        efron = coxph(ph_trial, ties="efron")
        assert_allclose(efron.coefficient, breslow.coefficient, rtol=1e-10)

    @pytest.mark.parametrize("ties", ["breslow", "efron"])
    def test_tied_loglik_matches_direct(self, ties):
        risk_sets = RiskSets(TIED_TIME, TIED_EVENT, TIED_ARM.reshape(-1, 1))
        for beta in (-0.7, 0.0, 0.4):
            loglik, _, _ = risk_sets.loglik_score_hessian(np.array([beta]), ties)
            expected = partial_loglik(beta, TIED_TIME, TIED_EVENT, TIED_ARM, ties)
            assert_allclose(loglik, expected, rtol=1e-12)

    @pytest.mark.parametrize("ties", ["breslow", "efron"])
    def test_tied_score_matches_difference(self, ties):
        risk_sets = RiskSets(TIED_TIME, TIED_EVENT, TIED_ARM.reshape(-1, 1))
        beta, h = 0.3, 1e-6
        _, score, hessian = risk_sets.loglik_score_hessian(np.array([beta]), ties)
        up = partial_loglik(beta + h, TIED_TIME, TIED_EVENT, TIED_ARM, ties)
        down = partial_loglik(beta - h, TIED_TIME, TIED_EVENT, TIED_ARM, ties)
        assert_allclose(score[0], (up - down) / (2 * h), rtol=1e-6)
        assert hessian[0, 0] < 0

    def test_efron_differs_with_ties(self):
        store = SubjectStore.from_arrays(TIED_TIME, TIED_EVENT, TIED_ARM)
        breslow = coxph(store, ties="breslow")
        efron = coxph(store, ties="efron")
        assert efron.ties == "efron"
        assert efron.coefficient != pytest.approx(breslow.coefficient, rel=1e-6)


class TestOptimizers:

    def test_bfgs_matches_newton(self, ph_trial):
        newton = coxph(ph_trial, method="newton")
        bfgs = coxph(ph_trial, method="bfgs")
        assert bfgs.backend_name == "cpu_bfgs_cox"
        assert newton.backend_name == "cpu_newton_cox"
        assert_allclose(bfgs.coefficient, newton.coefficient, rtol=ITERATIVE.rtol)
        assert_allclose(bfgs.standard_error, newton.standard_error, rtol=ITERATIVE.rtol)

    def test_bfgs_ignores_newton_tolerance(self, ph_trial):
        default = coxph(ph_trial, method="bfgs")
        loose = coxph(ph_trial, method="bfgs", tol=1e-2)
        assert loose.coefficient == default.coefficient

    def test_newton_tolerance_applies(self, ph_trial):
        tight = coxph(ph_trial, tol=1e-10)
        loose = coxph(ph_trial, tol=1e-1)
        assert loose.n_iter <= tight.n_iter
        assert_allclose(tight.score, 0.0, atol=1e-8)

    def test_timing_recorded(self, ph_trial):
        fit = coxph(ph_trial)
        assert "optimization" in fit.timing


class TestFailures:

    def test_separation_does_not_converge(self):
        store = SubjectStore.from_arrays(SEPARATED_TIME, SEPARATED_EVENT, SEPARATED_ARM)
        with pytest.raises(ConvergenceError) as exc_info:
            coxph(store)
        assert exc_info.value.reason == "max_iterations"
        assert exc_info.value.iterations == 30

    def test_iteration_cap_respected(self):
        store = SubjectStore.from_arrays(SEPARATED_TIME, SEPARATED_EVENT, SEPARATED_ARM)
        with pytest.raises(ConvergenceError) as exc_info:
            coxph(store, max_iter=5)
        assert exc_info.value.iterations == 5

    def test_zero_events(self):
        store = SubjectStore.from_arrays([1.0, 2.0, 3.0, 4.0], np.zeros(4), [0, 1, 0, 1])
        with pytest.raises(InsufficientEventsError) as exc_info:
            coxph(store)
        assert exc_info.value.n_events == 0
        assert exc_info.value.n_observations == 4

    def test_single_arm(self):
        store = SubjectStore.from_arrays([1.0, 2.0, 3.0], [1, 1, 1], [1, 1, 1])
        with pytest.raises(ValidationError, match="both arms"):
            coxph(store)

    def test_failures_share_base_class(self):
        store = SubjectStore.from_arrays([1.0, 2.0], [0, 0], [0, 1])
        with pytest.raises(HazardTrendError):
            coxph(store)

    def test_invalid_ties(self, ph_trial):
        with pytest.raises(ValueError, match="ties"):
            coxph(ph_trial, ties="exact")

    def test_invalid_method(self, ph_trial):
        with pytest.raises(ValueError, match="method"):
            coxph(ph_trial, method="irls")

    def test_requires_store(self):
        with pytest.raises(TypeError, match="SubjectStore"):
            coxph({"time": [1.0]})


class TestConcordance:

    def test_hand_computed(self):
        """Six comparable pairs: four concordant, two tied on risk."""
        time = np.array([1.0, 2.0, 3.0, 4.0])
        event = np.ones(4)
        X = np.array([[1.0], [1.0], [0.0], [0.0]])
        assert concordance(np.array([1.0]), time, event, X) == pytest.approx(5 / 6)

    def test_reversed_sign(self):
        time = np.array([1.0, 2.0, 3.0, 4.0])
        event = np.ones(4)
        X = np.array([[1.0], [1.0], [0.0], [0.0]])
        assert concordance(np.array([-1.0]), time, event, X) == pytest.approx(1 / 6)
