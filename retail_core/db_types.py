"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.

SQLite evaluates NUMERIC arithmetic in binary floating point, so any
``column +/- :value`` written back or compared in SQL goes through
round_quantity / round_money to stay on the column's scale.
"""
from sqlalchemy import Numeric, Uuid, func

QUANTITY_SCALE = 3
MONEY_SCALE = 2

# Native UUID on PostgreSQL, CHAR(32) on SQLite
UUIDType = Uuid

# Currency amounts: 2 decimal places
MoneyType = Numeric(12, MONEY_SCALE)

# Quantities support fractional units (meters, kg) to 3 decimal places
QuantityType = Numeric(12, QUANTITY_SCALE)

# Percentages such as tax rates
RateType = Numeric(5, 2)


def round_quantity(expr):
    """SQL ROUND(expr, 3)."""
    return func.round(expr, QUANTITY_SCALE)


def round_money(expr):
    """SQL ROUND(expr, 2)."""
    return func.round(expr, MONEY_SCALE)
