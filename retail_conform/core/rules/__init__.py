"""
Declarative field rules and configuration management.
"""

from .rule_config import DatasetRules, FieldRule, RuleConfigBuilder, RuleConfigLoader, RuleSet
from .rule_engine import FieldRuleEngine, FieldRuleOutcome

__all__ = [
    "FieldRule",
    "DatasetRules",
    "RuleSet",
    "RuleConfigLoader",
    "RuleConfigBuilder",
    "FieldRuleEngine",
    "FieldRuleOutcome",
]
