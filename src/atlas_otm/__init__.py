"""AtlasOTM - cache and serve raster map tiles"""

__version__ = "0.1.0"
