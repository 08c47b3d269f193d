"""
Domain services.

The orchestrator composes the credential vault, usage meter and response
cache around a caller-supplied remote task. It never interprets the content
the remote task returns.
"""
