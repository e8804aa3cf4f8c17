"""Propagation overlay engine — Visualization Package.

Matplotlib renderings of the gray-line geometry and aurora raster.
"""
