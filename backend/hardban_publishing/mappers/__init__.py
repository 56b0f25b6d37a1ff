# Mappers package init
"""
HardbanRecords Publishing API - Mapper Layer
=============================================

What:  Pure conversions between persisted rows (flat columns, JSON text
       blobs) and API shapes (nested sections, computed fields).

Rules every mapper follows:
    - to_api_response(None) is None; a row that fails to map is logged and
      gives None instead of raising
    - list mapping isolates failures per row
    - create requests get explicit defaults; update requests carry only
      the fields that were sent, plus updated_at
    - input mappings are never modified
"""

from hardban_publishing.mappers.chapter import ChapterMapper, ChapterMappingOptions, chapter_mapper
from hardban_publishing.mappers.rights import RightsMapper, RightsMappingOptions, rights_mapper

__all__ = [
    "ChapterMapper",
    "ChapterMappingOptions",
    "RightsMapper",
    "RightsMappingOptions",
    "chapter_mapper",
    "rights_mapper",
]
