#!/usr/bin/env python3
"""
Cross-reference rules.

A rule reads: "if a cluster contains an article from trigger source T, it
must also contain articles from at least M of the required sources S before
it can be trusted alone". Rules are data loaded from JSON and validated
against the configured sources at startup.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..exceptions import ConfigurationError, MissingRuleError
from ..sources.matching import SourceMatcher

logger = logging.getLogger(__name__)


@dataclass
class CrossReferenceRule:
    """One declarative corroboration rule."""
    trigger_source: str
    required_sources: List[str] = field(default_factory=list)
    minimum_matches: int = 2
    recheck_delay_hours: float = 1.0

    @property
    def recheck_delay(self) -> timedelta:
        return timedelta(hours=self.recheck_delay_hours)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trigger_source': self.trigger_source,
            'required_sources': list(self.required_sources),
            'minimum_matches': self.minimum_matches,
            'recheck_delay_hours': self.recheck_delay_hours
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_delay_hours: float = 1.0) -> 'CrossReferenceRule':
        return cls(
            trigger_source=data['trigger_source'],
            required_sources=list(data.get('required_sources') or []),
            minimum_matches=int(data.get('minimum_matches', 2)),
            recheck_delay_hours=float(data.get('recheck_delay_hours', default_delay_hours))
        )


DEFAULT_RULES = [
    CrossReferenceRule(
        trigger_source='nu.nl',
        required_sources=['volkskrant.nl', 'nos.nl', 'telegraaf.nl'],
        minimum_matches=2,
        recheck_delay_hours=1.0
    )
]


def load_rules(path: Optional[str], default_delay_hours: float = 1.0) -> List[CrossReferenceRule]:
    """
    Load rules from JSON, falling back to the built-in table when the file is absent.

    Rules without `recheck_delay_hours`, and the built-in table, use
    `default_delay_hours`.

    Raises:
        ConfigurationError: If the file exists but cannot be parsed
    """
    if not path or not Path(path).exists():
        logger.info("No rules file found, using built-in cross-reference rules")
        return [replace(rule, recheck_delay_hours=default_delay_hours) for rule in DEFAULT_RULES]

    try:
        data = json.loads(Path(path).read_text(encoding='utf-8'))
        entries = data.get('rules', []) if isinstance(data, dict) else data
        rules = [CrossReferenceRule.from_dict(entry, default_delay_hours) for entry in entries]
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise ConfigurationError('RULES_FILE', f"invalid rules file {path}: {e}") from e

    logger.info(f"Loaded {len(rules)} cross-reference rules from {Path(path).name}")
    return rules


class RuleTable:
    """Validated rules with their trigger and required sources resolved to ids."""

    def __init__(self, rules: List[CrossReferenceRule], matcher: SourceMatcher):
        """
        Args:
            rules: Rules in precedence order
            matcher: Resolves the loose source references in each rule

        Raises:
            MissingRuleError: If a trigger cannot be resolved to a primary,
                cross-reference-required source or a rule is unsatisfiable
        """
        self.rules = list(rules)
        self.matcher = matcher
        self._trigger_ids: Dict[int, str] = {}
        self.validate()

    def validate(self) -> None:
        for index, rule in enumerate(self.rules):
            trigger = self.matcher.resolve(rule.trigger_source)
            if trigger is None:
                raise MissingRuleError(rule.trigger_source, "trigger source does not match any configured source")
            if not trigger.is_trigger_eligible:
                raise MissingRuleError(
                    rule.trigger_source,
                    f"trigger source {trigger.id} must be tier 'primary' with cross_reference_required"
                )
            if not rule.required_sources:
                raise MissingRuleError(rule.trigger_source, "rule has no required sources")
            if rule.minimum_matches < 1 or rule.minimum_matches > len(rule.required_sources):
                raise MissingRuleError(
                    rule.trigger_source,
                    f"minimum_matches={rule.minimum_matches} must be between 1 and {len(rule.required_sources)}"
                )
            for reference in rule.required_sources:
                if self.matcher.resolve(reference) is None:
                    logger.warning(f"Required source '{reference}' for rule {rule.trigger_source} is not configured")
            self._trigger_ids[index] = trigger.id

    def trigger_id(self, rule: CrossReferenceRule) -> str:
        return self._trigger_ids[self.rules.index(rule)]

    def required_id(self, reference: str) -> Optional[str]:
        return self.matcher.resolve_id(reference)

    def rule_for_sources(self, source_ids: List[str]) -> Optional[CrossReferenceRule]:
        """First rule whose trigger source appears among the given source ids."""
        present = set(source_ids)
        for index, rule in enumerate(self.rules):
            if self._trigger_ids[index] in present:
                return rule
        return None

    def to_list(self) -> List[Dict[str, Any]]:
        return [rule.to_dict() for rule in self.rules]
