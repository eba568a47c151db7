"""Mealdeck: recipe import and shopping-list normalization."""

__version__ = "0.1.0"
