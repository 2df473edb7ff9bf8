"""
PulseTrade - timed up/down crypto trading service
"""

__version__ = "1.0.0"
