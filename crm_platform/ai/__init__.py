"""
AI integrations: natural-language segment rule generation.
"""
