"""Gmail and Calendar service modules.

All provider calls go through ``ServiceCallWrapper``.
"""

from gworkspace_accounts.services.calendar import CalendarService
from gworkspace_accounts.services.call_wrapper import CallState, ServiceCallWrapper
from gworkspace_accounts.services.gmail import GmailService

__all__ = ["CalendarService", "CallState", "GmailService", "ServiceCallWrapper"]
