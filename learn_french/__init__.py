"""
Learn French Content

The content data layer of a French learning app: a local document store,
an entity normalizer, a cache that merges bundled and user-authored content,
and seen-state tracking for practice rotation.
"""

from . import db
from . import normalize
from . import content
from . import scheduler
from . import fallback

from .content import ContentCache
from .db import DocumentStore
from .scheduler import SeenTracker

__version__ = "0.1.0"
__all__ = ["db", "normalize", "content", "scheduler", "fallback", "ContentCache", "DocumentStore", "SeenTracker"]
