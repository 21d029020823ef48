"""Tools for developing R packages: load, check, install and run examples."""

__version__ = "0.1.0"
