"""Lending Library - catalog and lending tracker

This package contains:
- Book records and the category registry (book.py, categories.py)
- Loan and user records (records.py)
- Catalog store contract and adapters (store.py, database.py, memory_store.py)
- Lending rules (lending.py)
- Service facade with audit notifications (service.py)
- CLI interface (main.py) and HTTP API (api.py)
"""

__version__ = "1.0.0"
