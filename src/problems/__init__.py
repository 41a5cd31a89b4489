"""
NCERT problem bank: storage lookup and JSON import.
"""

from .loader import estimate_complexity, load_problem_bank, parse_problem_bank, requires_multi_step
from .repository import ProblemRepository

__all__ = [
    "ProblemRepository",
    "load_problem_bank",
    "parse_problem_bank",
    "estimate_complexity",
    "requires_multi_step",
]
