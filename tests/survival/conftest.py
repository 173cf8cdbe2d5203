"""
Shared trial datasets for survival tests.

Both trials are built deterministically from exponential quantiles,
u_i = (i - 0.5) / 100 for i = 1..100 per arm, so that every estimate is
reproducible without a random seed and the empirical hazards track the
generating ones closely.
"""

import numpy as np
import pytest

from hazardtrend.survival import SubjectStore


N_PER_ARM = 100


def _cumulative_hazards() -> np.ndarray:
    u = (np.arange(1, N_PER_ARM + 1) - 0.5) / N_PER_ARM
    return -np.log(u)


def _administrative_censoring(time, horizon):
    event = (time < horizon).astype(np.float64)
    return np.minimum(time, horizon), event


def make_piecewise_trial(rate, early_hr, late_hr, landmark, horizon):
    """Control hazard `rate` throughout; treatment hazard early_hr * rate
    before `landmark` and late_hr * rate after it. Follow-up ends at
    `horizon`.
    """
    h = _cumulative_hazards()
    control = h / rate
    h_at_landmark = rate * early_hr * landmark
    treated = np.where(
        h < h_at_landmark,
        h / (rate * early_hr),
        landmark + (h - h_at_landmark) / (rate * late_hr),
    )
    time, event = _administrative_censoring(
        np.concatenate([control, treated]), horizon,
    )
    arm = np.repeat([0.0, 1.0], N_PER_ARM)
    return SubjectStore.from_arrays(time, event, arm)


def make_waning_trial():
    """Treatment protects for 12 months, then the effect wears off.

    Control hazard 0.06/month throughout. Treatment hazard is
    0.4 * 0.06 before month 12 and 0.06 afterwards. Follow-up ends at 60.
    """
    return make_piecewise_trial(0.06, 0.4, 1.0, 12.0, 60.0)


def make_modest_benefit_trial():
    """Strong early benefit (HR 0.3 to month 12), slight late harm (HR 1.1).

    Control hazard 0.02/month, follow-up to 48. The averaged Cox hazard
    ratio comes out near 0.82 while the effect is clearly not constant.
    """
    return make_piecewise_trial(0.02, 0.3, 1.1, 12.0, 48.0)


def make_ph_trial():
    """Proportional hazards: control 0.05/month, treatment 0.03/month.

    Follow-up ends at 40.
    """
    h = _cumulative_hazards()
    time, event = _administrative_censoring(
        np.concatenate([h / 0.05, h / 0.03]), 40.0,
    )
    arm = np.repeat([0.0, 1.0], N_PER_ARM)
    return SubjectStore.from_arrays(time, event, arm)


@pytest.fixture(scope="module")
def waning_trial():
    return make_waning_trial()


@pytest.fixture(scope="module")
def modest_benefit_trial():
    return make_modest_benefit_trial()


@pytest.fixture(scope="module")
def ph_trial():
    return make_ph_trial()
