"""
Futsal tournament engine: roster draw, fixtures, standings and match clock.
"""
__version__ = '0.1.0'
