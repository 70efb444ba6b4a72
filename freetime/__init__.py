"""
Free time analyzer - find the unscheduled time in a working day.
"""

__version__ = "0.1.0"
