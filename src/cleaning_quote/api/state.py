"""
Shared service instance for the API routers.
"""
from typing import Optional

from ..services.quote_service import QuoteService


_service: Optional[QuoteService] = None


def get_quote_service() -> QuoteService:
    """FastAPI dependency returning the process-wide QuoteService."""
    global _service
    if _service is None:
        _service = QuoteService()
    return _service
