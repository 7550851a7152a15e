"""
SURFACESCAN - Scan Modules

Pipeline contract and the module registry.
"""
