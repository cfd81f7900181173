"""
Bedarieux Modules
=================

Flask blueprint modules for the newsletter pipeline.
"""

__all__ = ['campaigns', 'content', 'email', 'newsletter', 'tracking']
