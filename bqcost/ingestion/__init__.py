"""
Remote listing pipeline: rate limiting, retries, pagination and
per-table metadata fetches.
"""
