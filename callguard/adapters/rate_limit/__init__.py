"""Rate limiting adapters.

This package keeps the admission algorithm behind a small abstraction so the
in-memory store can be swapped for another backend without changing the
``RateLimiter`` facade that wraps callables.
"""
