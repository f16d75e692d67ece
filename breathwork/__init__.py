"""Breathwork: guided breathing session tracker."""

__version__ = "0.1.0"
