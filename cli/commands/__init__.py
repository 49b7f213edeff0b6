"""
Colored Asset Protocol CLI Commands

Command modules registered with the main CLI.
"""

__all__ = ['transaction']
