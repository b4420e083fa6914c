"""Cross-reference rules, verification and bounded rechecks."""

from .rules import CrossReferenceRule, RuleTable, load_rules, DEFAULT_RULES
from .verifier import CrossReferenceVerifier
from .recheck import RecheckScheduler

__all__ = [
    'CrossReferenceRule', 'RuleTable', 'load_rules', 'DEFAULT_RULES',
    'CrossReferenceVerifier', 'RecheckScheduler',
]
