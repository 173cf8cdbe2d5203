"""
hazardtrend: time-varying treatment effects in two-arm survival data.

Quantifies whether a hazard ratio drifts over follow-up, by Kaplan-Meier
curves, a Cox model with a Schoenfeld residual test, a flexible
parametric model with a time-varying treatment effect, and landmark
analyses.

Submodules:
    core: Result envelope, exceptions, validation, optimizers
    survival: Estimators, cohort transforms and solutions
"""

__version__ = "0.1.0"

from hazardtrend import survival
from hazardtrend.survival import (
    Subject,
    SubjectStore,
    cox_zph,
    coxph,
    kaplan_meier,
    landmark_analysis,
    piecewise_hazard_ratios,
    stpm2,
)

__all__ = [
    "__version__",
    "survival",
    "Subject",
    "SubjectStore",
    "kaplan_meier",
    "coxph",
    "cox_zph",
    "stpm2",
    "landmark_analysis",
    "piecewise_hazard_ratios",
]
