"""Split validation and distribution calculation."""

from royalty_engine.calculators.distribution import DistributionCalculator
from royalty_engine.calculators.validator import SplitValidator

__all__ = [
    "DistributionCalculator",
    "SplitValidator",
]
