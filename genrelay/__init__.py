"""
genrelay: cache-first, retrying, metered calls to generative AI providers.

Components:
- core: fingerprinting, response cache, retry executor, errors, logging,
  metrics, tracing and settings
- services: credential vault, usage meter, provider client and the
  orchestrator that composes them
"""

__version__ = "0.1.0"
