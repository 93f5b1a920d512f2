"""
Shared configuration, errors, HTTP transport, caching and schemas.
"""
