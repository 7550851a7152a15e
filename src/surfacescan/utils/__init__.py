"""
SURFACESCAN - Utilities
"""
