"""
Business services: rule compilation, audience selection, campaign dispatch,
delivery simulation and receipt reconciliation.
"""
