"""Knotboard - an infinite canvas for notes, links and media."""

__version__ = "1.0.0"
__app_id__ = "io.github.knotboard.Knotboard"
