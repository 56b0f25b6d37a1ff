"""
HardbanRecords Publishing API - Chapter Mapper
===============================================

What:  Converts `chapters` rows to API shapes and API payloads back to
       column values, including the computed word count and reading time.
How:   Same layout as the rights mapper: base fields, then optional sections
       gated by `ChapterMappingOptions`, each blob section isolated.
Who:   ChapterService and the chapter routes.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from hardban_publishing.mappers.base import (
    MAPPING_ERRORS,
    dump_json_field,
    map_list,
    parse_json_field,
    pick_present,
    safe_section,
    to_float,
    to_int,
    utc_now,
    validate_mapped_data,
)
from hardban_publishing.mappers.content import (
    calculate_reading_time,
    calculate_word_count,
    to_markdown,
    to_plain_text,
)

logger = logging.getLogger(__name__)

BASE_FIELDS = (
    "id",
    "publication_id",
    "title",
    "content",
    "excerpt",
    "order_index",
    "word_count",
    "reading_time",
    "status",
    "created_at",
    "updated_at",
)

SUMMARY_FIELDS = tuple(name for name in BASE_FIELDS if name != "content")

TOC_FIELDS = ("id", "title", "order_index", "word_count", "reading_time", "status")

SEARCH_FIELDS = ("id", "publication_id", "title", "excerpt", "order_index", "word_count", "status")

UPDATABLE_FIELDS = ("title", "content", "excerpt", "order_index", "word_count", "reading_time", "status")

JSON_FIELDS = ("keywords", "metadata", "collaboration_data", "content_analysis", "version_info")

EXPORT_FORMATS = ("json", "markdown", "txt", "docx")


@dataclass(frozen=True)
class ChapterMappingOptions:
    include_content: bool = True
    include_content_analysis: bool = False
    include_keywords: bool = False
    include_metadata: bool = False
    include_collaboration: bool = False
    include_versioning: bool = False
    include_publication: bool = False
    include_comments: bool = False
    include_revisions: bool = False


EXPORT_OPTIONS = ChapterMappingOptions(
    include_content_analysis=True,
    include_keywords=True,
    include_metadata=True,
)


class ChapterMapper:
    """Row ⇄ API conversions for chapters."""

    entity = "chapter"

    # ── Row → API ─────────────────────────────────────────────────────────

    def to_api_response(
        self,
        row: Optional[Mapping[str, Any]],
        options: Optional[ChapterMappingOptions] = None,
    ) -> Optional[Dict[str, Any]]:
        if not row:
            return None
        options = options or ChapterMappingOptions()
        chapter_id = None

        try:
            chapter_id = row.get("id")
            mapped = {name: row.get(name) for name in BASE_FIELDS}
            if not options.include_content:
                del mapped["content"]

            if options.include_content_analysis and row.get("content_analysis"):
                mapped["content_analysis"] = safe_section(
                    "content_analysis", self.map_content_analysis, row["content_analysis"], entity_id=chapter_id
                )

            if options.include_keywords and row.get("keywords"):
                mapped["keywords"] = safe_section(
                    "keywords", parse_json_field, row["keywords"], list, "keywords", entity_id=chapter_id
                )

            if options.include_metadata and row.get("metadata"):
                mapped["metadata"] = safe_section(
                    "metadata", parse_json_field, row["metadata"], dict, "metadata", entity_id=chapter_id
                )

            if options.include_collaboration and row.get("collaboration_data"):
                mapped["collaboration_data"] = safe_section(
                    "collaboration_data", self.map_collaboration_data, row["collaboration_data"], entity_id=chapter_id
                )

            if options.include_versioning and row.get("version_info"):
                mapped["version_info"] = safe_section(
                    "version_info", self.map_version_info, row["version_info"], entity_id=chapter_id
                )

            if options.include_publication and row.get("publication"):
                mapped["publication"] = self.map_publication_summary(row["publication"])

            if options.include_comments and row.get("comments") is not None:
                comments = row["comments"]
                mapped["comments"] = (
                    [self.map_comment(c) for c in comments if c] if isinstance(comments, list) else []
                )

            if options.include_revisions and row.get("revisions") is not None:
                revisions = row["revisions"]
                mapped["revisions"] = (
                    [self.map_revision(r) for r in revisions if r] if isinstance(revisions, list) else []
                )

            return mapped

        except MAPPING_ERRORS as e:
            logger.error(
                "Error mapping chapter to API response: %s",
                str(e),
                extra={"chapter_id": str(chapter_id) if chapter_id else None},
            )
            return None

    def to_api_response_list(
        self, rows: Any, options: Optional[ChapterMappingOptions] = None
    ) -> List[Dict[str, Any]]:
        return map_list(self.to_api_response, rows, options)

    def to_summary(self, row: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        if not row:
            return None
        return {name: row.get(name) for name in SUMMARY_FIELDS}

    def to_table_of_contents(self, row: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        if not row:
            return None
        return {name: row.get(name) for name in TOC_FIELDS}

    def to_search_result(
        self,
        row: Optional[Mapping[str, Any]],
        relevance_score: Optional[float] = None,
        matched_content: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        if not row:
            return None
        result = {name: row.get(name) for name in SEARCH_FIELDS}
        if relevance_score is not None:
            result["relevance_score"] = relevance_score
        if matched_content:
            result["matched_content"] = matched_content
        return result

    def to_export_format(
        self, row: Optional[Mapping[str, Any]], fmt: str = "json"
    ) -> Optional[Dict[str, Any]]:
        if not row:
            return None
        chapter = self.to_api_response(row, EXPORT_OPTIONS)
        if chapter is None:
            return None
        if fmt == "markdown":
            return self.to_markdown_export(chapter)
        if fmt == "txt":
            return self.to_text_export(chapter)
        if fmt == "docx":
            return self.to_docx_export(chapter)
        return chapter

    # ── Exports ───────────────────────────────────────────────────────────

    @staticmethod
    def _export_filename(chapter: Mapping[str, Any], extension: str) -> str:
        return f"chapter-{chapter.get('order_index') or 'untitled'}.{extension}"

    @staticmethod
    def _export_metadata(chapter: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "title": chapter.get("title"),
            "word_count": chapter.get("word_count"),
            "reading_time": chapter.get("reading_time"),
        }

    def to_markdown_export(self, chapter: Mapping[str, Any]) -> Dict[str, Any]:
        markdown = f"# {chapter.get('title')}\n\n"
        if chapter.get("excerpt"):
            markdown += f"*{chapter['excerpt']}*\n\n"
        if chapter.get("content"):
            markdown += to_markdown(chapter["content"])
        return {
            "filename": self._export_filename(chapter, "md"),
            "content": markdown,
            "metadata": self._export_metadata(chapter),
        }

    def to_text_export(self, chapter: Mapping[str, Any]) -> Dict[str, Any]:
        title = chapter.get("title") or ""
        text = f"{title}\n{'=' * len(title)}\n\n"
        if chapter.get("content"):
            text += to_plain_text(chapter["content"])
        return {
            "filename": self._export_filename(chapter, "txt"),
            "content": text,
            "metadata": self._export_metadata(chapter),
        }

    def to_docx_export(self, chapter: Mapping[str, Any]) -> Dict[str, Any]:
        # No document renderer is wired in; the chapter data travels as-is
        return {
            "filename": self._export_filename(chapter, "docx"),
            "data": dict(chapter),
            "metadata": self._export_metadata(chapter),
        }

    # ── API → row ─────────────────────────────────────────────────────────

    def from_api_create_request(self, data: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        if not data:
            return None
        try:
            mapped: Dict[str, Any] = {
                "publication_id": data.get("publication_id"),
                "title": data.get("title"),
                "content": data.get("content") or "",
                "excerpt": data.get("excerpt") or None,
                "order_index": data.get("order_index") or 0,
                "word_count": data.get("word_count") or None,
                "reading_time": data.get("reading_time") or None,
                "status": data.get("status") or "draft",
            }
            for name in JSON_FIELDS:
                if data.get(name):
                    mapped[name] = dump_json_field(data[name])

            if not mapped["word_count"] and mapped["content"]:
                mapped["word_count"] = calculate_word_count(mapped["content"])
            if not mapped["reading_time"] and mapped["word_count"]:
                mapped["reading_time"] = calculate_reading_time(mapped["word_count"])
            return mapped

        except MAPPING_ERRORS as e:
            logger.error("Error mapping chapter create request: %s", str(e))
            return None

    def from_api_update_request(self, data: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        """
        Partial update. New content always recomputes word_count and
        reading_time, overriding any values sent alongside it.
        """
        if data is None:
            return None
        try:
            mapped = pick_present(data, UPDATABLE_FIELDS)
            for name in JSON_FIELDS:
                if name in data:
                    mapped[name] = dump_json_field(data[name])

            if "content" in mapped:
                mapped["word_count"] = calculate_word_count(mapped["content"])
                mapped["reading_time"] = calculate_reading_time(mapped["word_count"])

            mapped["updated_at"] = utc_now()
            return mapped

        except MAPPING_ERRORS as e:
            logger.error("Error mapping chapter update request: %s", str(e))
            return None

    # ── Sections ──────────────────────────────────────────────────────────

    @staticmethod
    def map_content_analysis(value: Any) -> Optional[Dict[str, Any]]:
        analysis = parse_json_field(value, dict, "content_analysis")
        if analysis is None:
            return None
        language_quality = analysis.get("language_quality") or {}
        structure = analysis.get("structure_analysis") or {}
        return {
            "quality_score": to_float(analysis.get("quality_score")),
            "readability_score": to_float(analysis.get("readability_score")),
            "sentiment_score": to_float(analysis.get("sentiment_score")),
            "complexity_level": analysis.get("complexity_level") or "medium",
            "language_quality": {
                "grammar_score": to_float(language_quality.get("grammar_score")),
                "spelling_errors": to_int(language_quality.get("spelling_errors")),
                "style_suggestions": language_quality.get("style_suggestions") or [],
            },
            "structure_analysis": {
                "paragraph_count": to_int(structure.get("paragraph_count")),
                "sentence_count": to_int(structure.get("sentence_count")),
                "average_sentence_length": to_float(structure.get("average_sentence_length")),
                "dialogue_percentage": to_float(structure.get("dialogue_percentage")),
            },
            "keywords_extracted": analysis.get("keywords_extracted") or [],
            "themes_identified": analysis.get("themes_identified") or [],
            "improvement_suggestions": analysis.get("improvement_suggestions") or [],
        }

    @staticmethod
    def map_collaboration_data(value: Any) -> Optional[Dict[str, Any]]:
        data = parse_json_field(value, dict, "collaboration_data")
        if data is None:
            return None
        return {
            "collaborators": data.get("collaborators") or [],
            "comments_count": to_int(data.get("comments_count")),
            "active_sessions": data.get("active_sessions") or [],
            "last_activity": data.get("last_activity"),
            "permissions": data.get("permissions") or {},
            "workflow_stage": data.get("workflow_stage") or "draft",
            "approval_status": data.get("approval_status") or "pending",
        }

    @staticmethod
    def map_version_info(value: Any) -> Optional[Dict[str, Any]]:
        info = parse_json_field(value, dict, "version_info")
        if info is None:
            return None
        return {
            "current_version": info.get("current_version") or "1.0",
            "version_history": info.get("version_history") or [],
            "last_major_change": info.get("last_major_change"),
            "change_summary": info.get("change_summary") or "",
            "created_by": info.get("created_by"),
            "revision_count": to_int(info.get("revision_count")),
        }

    @staticmethod
    def map_publication_summary(publication: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "id": publication.get("id"),
            "title": publication.get("title"),
            "publication_type": publication.get("publication_type"),
            "status": publication.get("status"),
            "language": publication.get("language"),
        }

    @staticmethod
    def map_comment(comment: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "id": comment.get("id"),
            "content": comment.get("content"),
            "position": comment.get("position") or None,
            "author": {
                "id": comment.get("author_id"),
                "name": comment.get("author_name") or "Anonymous",
            },
            "created_at": comment.get("created_at"),
            "resolved": comment.get("resolved") or False,
        }

    @staticmethod
    def map_revision(revision: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "id": revision.get("id"),
            "version": revision.get("version"),
            "title": revision.get("title"),
            "change_summary": revision.get("change_summary"),
            "word_count": revision.get("word_count"),
            "created_by": revision.get("created_by"),
            "created_at": revision.get("created_at"),
        }

    @staticmethod
    def validate_mapped_data(mapped: Optional[Mapping[str, Any]], required_fields=()) -> bool:
        return validate_mapped_data(mapped, required_fields, entity="chapter")


chapter_mapper = ChapterMapper()
