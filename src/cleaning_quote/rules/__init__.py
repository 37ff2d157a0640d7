"""Rules subpackage - the declarative price rule table and its validator."""
from .compile_rules import PricingRule, load_price_rules

__all__ = ['PricingRule', 'load_price_rules']
