"""
Core modules for AI Suggest.

This package contains the suggestion pipeline: usage governance, cost
estimation, context capture, prompt building and orchestration.
"""
