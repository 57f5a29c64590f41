"""
Generic JSON -> Prometheus exporter.

Fetches JSON documents from one or more HTTP endpoints and exposes every
numeric/boolean leaf as a gauge, named after its path in the document.
"""

__version__ = "0.1.0"
