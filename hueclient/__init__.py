"""Resilient client for Philips Hue Bridges."""

__version__ = "0.1.0"
