"""Services subpackage - quote operations and outbound notifications."""
from .notification_service import NotificationReport, NotificationService
from .quote_service import QuoteService

__all__ = ['NotificationReport', 'NotificationService', 'QuoteService']
