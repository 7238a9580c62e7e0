"""
AI Suggest - context-aware command suggestions with cost controls.
"""

__version__ = "0.1.0"
