"""doclive: live-reloading preview server for ``cargo doc``.

Watches a Cargo workspace, reruns the documentation build whenever a
relevant file changes, and reloads every open browser tab once the new
output is in place.
"""

__version__ = "0.1.0"
__description__ = "Live-reloading preview server for cargo doc"

__all__ = ["__version__"]
