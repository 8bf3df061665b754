"""Kernel domain layer: pure value objects and functions, zero I/O."""
