"""model-sync: on-demand, CRC32-verified cache of interpolation model files."""

__version__ = "0.3.0"
