"""
JSON persistence for the suggestion cache and usage record.
"""
