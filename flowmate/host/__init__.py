"""
Host capability interfaces and helpers shared by their implementations.
"""

from .types import (
    TabHandle,
    TabInfo,
    TabHost,
    ContentAction,
    ContentCapability,
    ContentResult,
    ElementFacts,
    VISIBILITY_EXEMPT,
)
from .extract import extract_words, serialize_table, encode_table

__all__ = [
    'TabHandle',
    'TabInfo',
    'TabHost',
    'ContentAction',
    'ContentCapability',
    'ContentResult',
    'ElementFacts',
    'VISIBILITY_EXEMPT',
    'extract_words',
    'serialize_table',
    'encode_table',
]
