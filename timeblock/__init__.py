"""
timeblock - time-block scheduling and calendar reconciliation.

Turns pending tasks, habits and meetings into concrete time blocks for a
day, repairs missed blocks, and mirrors blocks to an external calendar.
"""

__version__ = "0.1.0"
