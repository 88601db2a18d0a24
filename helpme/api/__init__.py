"""
HTTP интерфейс движка
"""

from helpme.api.app import create_app


__all__ = ["create_app"]
