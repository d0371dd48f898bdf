"""
shipreport: periodic "what shipped" reports from issue trackers.
"""

__version__ = "1.0.0"
