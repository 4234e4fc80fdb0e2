"""
Automation module - trigger to channel fan-out.
"""

from tradecast.automation.matcher import AutomationMatcher

__all__ = ["AutomationMatcher"]
