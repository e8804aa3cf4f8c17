"""Propagation overlay engine — Overlays Package.

Recompute-on-new-input lifecycle for the gray-line and aurora overlays, and
persistence of the geometry / raster products they hand to a map surface.
"""
