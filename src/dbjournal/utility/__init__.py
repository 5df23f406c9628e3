"""
Shared utilities: exceptions, retry and timestamp helpers.
"""
