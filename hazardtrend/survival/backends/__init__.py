"""
Backends for survival model fitting.

    CoxBackend  Cox partial likelihood
    FPMBackend  flexible parametric full likelihood
"""

from hazardtrend.survival.backends.cpu import CoxBackend, FPMBackend, select_backend

__all__ = ["CoxBackend", "FPMBackend", "select_backend"]
