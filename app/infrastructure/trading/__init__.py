"""
Infrastructure adapters for the trading bounded context.

Each adapter implements a domain port (ABC) and persists
domain entities through SQLAlchemy.
"""
