"""
ntfy2clip - copy ntfy notifications to the local clipboard.

Keeps a WebSocket subscription to a single ntfy topic alive and places
the text of every published message on the system clipboard.
"""

__version__ = "0.7.1"
__author__ = "ntfy2clip maintainers"
