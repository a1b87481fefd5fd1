"""
Test suite for shielded-wallet

Contains:
- tests/conftest.py    : Fixtures, in-memory settlement/store/key cache
- tests/unit/          : Unit tests for individual modules and service flows
"""
