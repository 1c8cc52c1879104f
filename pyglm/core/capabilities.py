"""
Capability string constants for PyGLM.

This module is the SINGLE SOURCE OF TRUTH for capability strings.
Import from here, never use raw strings.

Usage:
    from pyglm.core.capabilities import CAPABILITY_MATERIALIZED

    if not ds.supports(CAPABILITY_MATERIALIZED):
        raise ConfigurationError(...)
"""

# Columns are available as full numpy arrays in memory
CAPABILITY_MATERIALIZED = 'materialized'

# Columns can be read multiple times (nested refits, residual passes)
CAPABILITY_REPEATABLE = 'repeatable'

# At least one column holds text labels rather than numbers
CAPABILITY_CATEGORICAL = 'categorical'

ALL_CAPABILITIES = frozenset({
    CAPABILITY_MATERIALIZED,
    CAPABILITY_REPEATABLE,
    CAPABILITY_CATEGORICAL,
})

__all__ = [
    'CAPABILITY_MATERIALIZED',
    'CAPABILITY_REPEATABLE',
    'CAPABILITY_CATEGORICAL',
    'ALL_CAPABILITIES',
]
