"""
Package init for memverse.server
"""

from memverse.server.server import MemVerseServer
from memverse.server.auth import AuthManager
from memverse.server.mailer import Mailer
from memverse.server.userStore import UserStore

__all__ = ['MemVerseServer', 'AuthManager', 'Mailer', 'UserStore']
