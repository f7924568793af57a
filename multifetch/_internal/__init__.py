"""Internal modules for multifetch.

These back the public names re-exported from ``multifetch``; import from
there instead of reaching in here.

Modules:
    dispatch - Batch dispatcher, multiplexer and request models
    http - Shared HTTP client configuration
"""
