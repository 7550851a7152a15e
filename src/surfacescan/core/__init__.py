"""
SURFACESCAN - Core Engine

Transport resolution, resilient request execution, cancellation, scan state
and persistence.
"""
