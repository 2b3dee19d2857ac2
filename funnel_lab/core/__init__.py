"""
Core modules for Funnel Lab.

This package contains the analysis pipeline and the components it
orchestrates: authentication, plan entitlement, result caching,
configuration resolution, pricing, usage metering and error logging.
"""
