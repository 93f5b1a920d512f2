"""
Search services: fragment consolidation, relevance scoring and the
aggregation orchestrator.
"""
