"""Bulk data export API client.

This module talks to asynchronous bulk export servers over HTTP.
It starts export jobs, reports their status, and streams result files.
"""
