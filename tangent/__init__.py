"""Tangent - a tool-calling mobile assistant core."""

__version__ = "0.1.0"
