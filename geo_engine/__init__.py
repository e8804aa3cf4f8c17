"""Propagation overlay engine — Geo Engine Package.

Solar ephemeris, terminator / twilight solving, colour ramps and the
probability-grid raster compositor behind the gray-line and aurora overlays.
"""
