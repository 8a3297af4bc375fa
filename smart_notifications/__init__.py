"""
Smart notifications for a savings app: behavioural events in, derived
insights and cooldown-gated, rule-based notifications out.
"""

__version__ = "1.0.0"
