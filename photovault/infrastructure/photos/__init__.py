"""
Photo record persistence.

The relational store lives outside this service; the repository here is
the seam it plugs into.
"""
