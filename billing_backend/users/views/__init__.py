from .me import MeView

__all__ = ["MeView"]
