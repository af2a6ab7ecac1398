# manuscript/DB/__init__.py
from .api import ChapterStore, make_store

__all__ = ["ChapterStore", "make_store"]
