"""Lumentree gateway: dashboard API over the Lumentree solar inverter cloud."""

__version__ = "0.1.0"
