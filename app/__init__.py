"""Udhar Ledger: customer/vendor credit ledger, budgets, expenses and connected income."""

__version__ = "1.0.0"
