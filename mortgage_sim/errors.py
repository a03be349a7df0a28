"""Error classes for the mortgage acceleration simulator.

Numeric edge cases inside the engine saturate instead of raising; the only
error the simulator signals is a configuration it cannot run.
"""


class ConfigError(ValueError):
    """Invalid simulation configuration.

    Raised when loading or validating a configuration (empty or broken rate
    schedule, non-positive principal or term, penalty of 100 % or more) and by
    the engine when it is handed a configuration that breaks its invariants.
    Subclasses ``ValueError`` so callers that already handle parse errors
    handle this too.
    """
