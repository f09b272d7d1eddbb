"""
Patch Watcher - Primavera patch level monitoring.

This package provides functionality to:
- Fetch the vendor documentation page for the product
- Extract the latest advertised patch version from the page text
- Compare it with the locally installed patch version
- Notify the user and optionally mail the run log
"""

__version__ = "1.0.0"
__author__ = "Patch Watcher Team"
