"""Vulnerability and misconfiguration scanning core: data model, scanners, wire conversion, client and server."""

__version__ = "0.1.0"