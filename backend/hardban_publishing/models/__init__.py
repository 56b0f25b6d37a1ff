# Models package init
"""ORM models for the publishing tables. Importing this package registers them with Base.metadata."""

from hardban_publishing.models.chapter import Chapter
from hardban_publishing.models.rights import PublishingRight

__all__ = ["Chapter", "PublishingRight"]
