"""Bulk fetch orchestration.

This package polls export jobs, downloads result files, and routes
records through processors and sinks. It owns the transaction time
checkpoint that makes fetches incremental.
"""
