"""
HTTP API for shipreport.
"""
