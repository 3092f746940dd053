"""Post-processing of posterior rate-shift samples on phylogenetic trees."""

__all__ = [
    "PhyloTree",
    "ShiftEvent",
    "EventAssignment",
    "BammData",
    "build_event_assignment",
    "exponential_rate",
    "RateMatrix",
    "get_rate_through_time_matrix",
    "get_branch_shift_priors",
    "distinct_shift_configurations",
    "credible_shift_set",
    "CredibleShiftSet",
    "best_shift_configuration",
    "time_variable_branches",
    "rate_through_time_curves",
    "get_event_data",
    "read_newick",
    "read_event_csv",
    "write_event_csv",
]

_EXPORTS = {
    "PhyloTree": "rateshift.tree",
    "ShiftEvent": "rateshift.events",
    "EventAssignment": "rateshift.events",
    "BammData": "rateshift.events",
    "build_event_assignment": "rateshift.events",
    "exponential_rate": "rateshift.rates",
    "RateMatrix": "rateshift.rate_through_time",
    "get_rate_through_time_matrix": "rateshift.rate_through_time",
    "get_branch_shift_priors": "rateshift.credible_set",
    "distinct_shift_configurations": "rateshift.credible_set",
    "credible_shift_set": "rateshift.credible_set",
    "CredibleShiftSet": "rateshift.credible_set",
    "best_shift_configuration": "rateshift.credible_set",
    "time_variable_branches": "rateshift.time_variation",
    "rate_through_time_curves": "rateshift.rate_curves",
    "get_event_data": "rateshift.io",
    "read_newick": "rateshift.io",
    "read_event_csv": "rateshift.io",
    "write_event_csv": "rateshift.io",
}


def __getattr__(name):
    if name in _EXPORTS:
        from importlib import import_module

        return getattr(import_module(_EXPORTS[name]), name)
    raise AttributeError(name)
