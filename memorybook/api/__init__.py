"""
HTTP API for memorybook.
"""
