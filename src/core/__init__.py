"""
Core domain models, typed errors and data contracts.

This module contains the foundational building blocks that are independent
of the storage backend and of the HTTP layer.
"""
