"""Namespace and package environment emulation."""
