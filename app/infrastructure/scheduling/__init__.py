"""
Background jobs for order polling, auto trading and order expiry.
"""
