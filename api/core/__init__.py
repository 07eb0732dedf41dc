"""
Cross-cutting building blocks: DB pool, environment settings, loggers.

Include resolution lives in `includes/`, the HTTP surface in `records/`.
"""
