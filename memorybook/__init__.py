"""
memorybook: family memory journaling with AI-written storybooks.
"""

__version__ = "0.1.0"
