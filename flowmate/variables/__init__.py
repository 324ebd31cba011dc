"""
Variable store and interpolation.
"""

from .substitution import (
    VariableSubstitutor,
    VariableStore,
    interpolate,
    interpolate_params,
    strip_sigil,
    ITERATION_VAR,
    INDEX_VAR,
    ITEM_SELECTOR_VAR,
    SCREENSHOT_VAR,
    RESERVED_NAMES,
)

__all__ = [
    'VariableSubstitutor',
    'VariableStore',
    'interpolate',
    'interpolate_params',
    'strip_sigil',
    'ITERATION_VAR',
    'INDEX_VAR',
    'ITEM_SELECTOR_VAR',
    'SCREENSHOT_VAR',
    'RESERVED_NAMES',
]
