"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from decimal import Decimal

from sqlalchemy import Numeric, Uuid

# Native UUID on PostgreSQL, CHAR(32) on SQLite
UUIDType = Uuid

# Fixed-point money and percentage columns (never Float)
MoneyType = Numeric(12, 2)
PercentType = Numeric(5, 2)

ZERO = Decimal("0.00")
