"""
Nimbus Reports core library.

Location group hierarchy resolution and reference lookup caching over the
Nimbus CoreAPI OData service.
"""

__version__ = "1.0.0"
