"""
PDF rendering worker service.
"""
