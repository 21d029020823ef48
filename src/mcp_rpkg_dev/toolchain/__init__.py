"""Wrappers around the R build, check and install toolchain."""
