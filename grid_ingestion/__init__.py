"""Propagation overlay engine — Grid Ingestion Package.

Parsers that turn upstream geophysical grid documents (NOAA OVATION aurora
forecasts) into flat ``(longitude, latitude, value)`` sample arrays.
"""
