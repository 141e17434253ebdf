from .aggregator import AggregatorState, RegionResolution, VerdictAggregator
from .checker import check_equivalence
from .counterexample import build_counterexample
from .divergence import channel_checks, divergence_formula
from .matcher import DomainPartitionMatcher, MatchResult, Region
from .sampling import sample_inputs, spot_check

__all__ = [
    "AggregatorState",
    "DomainPartitionMatcher",
    "MatchResult",
    "Region",
    "RegionResolution",
    "VerdictAggregator",
    "build_counterexample",
    "channel_checks",
    "check_equivalence",
    "divergence_formula",
    "sample_inputs",
    "spot_check",
]
