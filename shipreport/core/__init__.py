"""
Core configuration, logging, errors and shared primitives.
"""
