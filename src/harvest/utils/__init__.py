"""
Utilities Package.

Provides the CAPTCHA solver framework. Protection detection and
challenge responses live in harvest.utils.challenge_handler.
"""

from .captcha_solver import (
    BaseCaptchaSolver,
    TwoCaptchaSolver,
    CaptchaType,
    SolverStatus,
    SolveResult,
    get_solver,
)

__all__ = [
    "BaseCaptchaSolver",
    "TwoCaptchaSolver",
    "CaptchaType",
    "SolverStatus",
    "SolveResult",
    "get_solver",
]
