"""Runtime support: retry, concurrency, and observability.

Submodules are imported directly (``falmcp.runtime.retry`` etc.) so that
foundation code can depend on observability without import cycles.
"""
