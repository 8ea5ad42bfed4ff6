"""Rate limiting adapters.

Client buckets live in process memory behind ``AbstractRateLimiter`` so a
shared store could replace them without changing the API layer.
"""
