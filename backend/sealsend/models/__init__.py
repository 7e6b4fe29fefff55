# sealsend/models/__init__.py
from .user import User
from .challenge import Challenge
from .auth_session import AuthSession
from .file_record import FileRecord

__all__ = ["User", "Challenge", "AuthSession", "FileRecord"]
