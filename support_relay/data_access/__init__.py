"""Storage, directory and auth collaborators."""

from .base import MessageStore, UserDirectory, AuthProvider

__all__ = [
    'MessageStore',
    'UserDirectory',
    'AuthProvider'
]
