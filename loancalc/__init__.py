"""
Loan Calculation Subsystem

Derives interest, days-past-due penalties, fee breakdowns with GST, EMI
schedules, disbursal and pre-closure amounts for consumer loans, and caches
authoritative results from the remote calculation engine. All money math
uses Decimal.
"""

__version__ = "1.0.0"
