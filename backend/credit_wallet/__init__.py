"""
Credit Wallet Module
Per-client verification credits for Smart Locator

This module provides:
- Plan-to-credit resolution (numeric allotments and the Unlimited sentinel)
- Concurrency-safe atomic credit reservation with refund-on-failure
- Admin top-up and absolute set of remaining credits
- The verification guard that wraps every billable external call

Collections used:
- clients: remainingCredits / initialCredits live on the client document
"""

__version__ = "1.0.0"
