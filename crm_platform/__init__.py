"""
CRM platform: segment rule evaluation and campaign delivery tracking.
"""
__version__ = "1.0.0"
