"""
Weekly activity report.

Aggregates the previous week's donations, expenses and collective activity
from the platform database and posts a plain-text summary to Slack.
"""

__version__ = "0.1.0"
