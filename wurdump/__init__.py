"""Wurdump - clipboard history engine with AI-assisted transformations"""

__version__ = "1.0.0"
