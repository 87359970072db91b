"""Patchstream - streaming edit engine for AI pair programming"""

__version__ = "0.1.0"
