"""
Hypothesis-Gated Editing Services

Journey pages -> Hypothesis Store -> Content Version Ledger, with the
Edit Gate state machine wrapping the mutation path.
"""

from .journey_pages import JourneyService, PAGE_TEMPLATES
from .hypothesis_store import HypothesisStore
from .content_ledger import ContentVersionLedger, VersionHistory
from .edit_gate import (
    EditGate,
    EditSession,
    EditSessionRegistry,
    GateAction,
    GateState,
    session_registry,
)

__all__ = [
    'JourneyService',
    'PAGE_TEMPLATES',
    'HypothesisStore',
    'ContentVersionLedger',
    'VersionHistory',
    # Edit Gate
    'EditGate',
    'EditSession',
    'EditSessionRegistry',
    'GateAction',
    'GateState',
    'session_registry',
]
