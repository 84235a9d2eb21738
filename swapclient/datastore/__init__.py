"""
Local repository - SQLite mirror of list resources.
"""

from swapclient.datastore.engine import close_db, get_session_factory, init_db
from swapclient.datastore.repositories import RoscaRepository

__all__ = ["init_db", "close_db", "get_session_factory", "RoscaRepository"]
