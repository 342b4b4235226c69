"""Tornado Monitor - relayer health, TORN price and StakeBurned event monitoring."""

__version__ = "0.1.0"
