"""Engine subpackage - quote models and pricing logic."""
from .pricing_engine import PricingEngine
from .models import LineItem, PricingResult, Quote, QuoteStatus

__all__ = ['PricingEngine', 'LineItem', 'PricingResult', 'Quote', 'QuoteStatus']
