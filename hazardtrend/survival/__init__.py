"""
Survival analysis for two-arm trials with waning treatment effects.

Public API:
    kaplan_meier(data) -> KMSolution | StratifiedKMSolution
    coxph(data) -> CoxSolution
    cox_zph(fit, data) -> ZPHSolution
    stpm2(data) -> FPMSolution
    landmark_analysis(data, landmarks) -> LandmarkSolution
    piecewise_hazard_ratios(data, breaks) -> PiecewiseSolution

Cohort transforms:
    early_cohort, late_cohort, window_cohort
"""

from hazardtrend.survival.design import Subject, SubjectStore
from hazardtrend.survival.solvers import (
    cox_zph,
    coxph,
    kaplan_meier,
    landmark_analysis,
    piecewise_hazard_ratios,
    stpm2,
)
from hazardtrend.survival._landmark import early_cohort, late_cohort, window_cohort
from hazardtrend.survival.solution import (
    CoxSolution,
    FPMSolution,
    HRCurve,
    KMSolution,
    LandmarkPeriod,
    LandmarkSolution,
    PiecewiseSolution,
    StratifiedKMSolution,
    WindowFit,
    ZPHSolution,
)

__all__ = [
    # Data
    "Subject",
    "SubjectStore",
    # Estimators
    "kaplan_meier",
    "coxph",
    "cox_zph",
    "stpm2",
    "landmark_analysis",
    "piecewise_hazard_ratios",
    # Cohorts
    "early_cohort",
    "late_cohort",
    "window_cohort",
    # Solutions
    "KMSolution",
    "StratifiedKMSolution",
    "CoxSolution",
    "ZPHSolution",
    "FPMSolution",
    "HRCurve",
    "LandmarkPeriod",
    "LandmarkSolution",
    "WindowFit",
    "PiecewiseSolution",
]
