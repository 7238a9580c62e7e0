"""
Command-line interface for AI Suggest.
"""
