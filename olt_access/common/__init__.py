"""
Common utilities - exceptions, result objects, validation and metrics
"""
