"""
Test suite for the order lifecycle core

Contains:
- tests/unit/          : Unit tests for individual modules and engine scenarios
"""
