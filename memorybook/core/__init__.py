"""
Core modules for memorybook.

This package contains the generation pipeline: quota enforcement,
prompt building, theme rendering and the error taxonomy.
"""
