"""
HardbanRecords Publishing API - Rights Mapper
==============================================

What:  Converts `publishing_rights` rows to API shapes and API payloads back
       to column values.
How:   The base fields are always returned; nested sections (financial
       terms, contract, compliance, territorial info, workflow, related
       records) are added per `RightsMappingOptions`. Each blob section is
       built independently, so one corrupt blob only blanks its own section.
Who:   RightsService and the rights routes.

Conflict detection compares (right_type, territory, language) exactly.
Overlapping scopes such as "US" inside "WORLD" are not detected.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from hardban_publishing.mappers.base import (
    MAPPING_ERRORS,
    dump_json_field,
    map_list,
    optional_float,
    parse_json_field,
    pick_present,
    safe_section,
    to_float,
    utc_now,
    utc_now_iso,
    validate_mapped_data,
)

logger = logging.getLogger(__name__)

BASE_FIELDS = (
    "id",
    "publication_id",
    "right_type",
    "territory",
    "language",
    "license_type",
    "exclusive",
    "sublicensing_allowed",
    "start_date",
    "end_date",
    "status",
    "created_at",
    "updated_at",
)

SUMMARY_FIELDS = (
    "id",
    "publication_id",
    "right_type",
    "territory",
    "language",
    "license_type",
    "exclusive",
    "status",
    "start_date",
    "end_date",
    "created_at",
)

UPDATABLE_FIELDS = (
    "right_type",
    "territory",
    "language",
    "license_type",
    "exclusive",
    "sublicensing_allowed",
    "start_date",
    "end_date",
    "status",
    "royalty_rate",
    "advance_amount",
    "minimum_guarantee",
    "currency",
)

JSON_FIELDS = ("contract_details", "compliance_data", "workflow_data")

EXPORT_FORMATS = ("json", "contract", "legal", "csv")

TERRITORIES: Dict[str, Dict[str, str]] = {
    "US": {"name": "United States", "region": "North America", "currency": "USD", "legal_system": "Common Law", "market_size": "Large"},
    "GB": {"name": "United Kingdom", "region": "Europe", "currency": "GBP", "legal_system": "Common Law", "market_size": "Large"},
    "DE": {"name": "Germany", "region": "Europe", "currency": "EUR", "legal_system": "Civil Law", "market_size": "Large"},
    "FR": {"name": "France", "region": "Europe", "currency": "EUR", "legal_system": "Civil Law", "market_size": "Large"},
    "CA": {"name": "Canada", "region": "North America", "currency": "CAD", "legal_system": "Common Law", "market_size": "Medium"},
    "AU": {"name": "Australia", "region": "Oceania", "currency": "AUD", "legal_system": "Common Law", "market_size": "Medium"},
    "JP": {"name": "Japan", "region": "Asia", "currency": "JPY", "legal_system": "Civil Law", "market_size": "Large"},
    "PL": {"name": "Poland", "region": "Europe", "currency": "PLN", "legal_system": "Civil Law", "market_size": "Medium"},
}

LANGUAGES: Dict[str, Dict[str, str]] = {
    "en": {"name": "English", "native_name": "English"},
    "es": {"name": "Spanish", "native_name": "Español"},
    "fr": {"name": "French", "native_name": "Français"},
    "de": {"name": "German", "native_name": "Deutsch"},
    "it": {"name": "Italian", "native_name": "Italiano"},
    "pt": {"name": "Portuguese", "native_name": "Português"},
    "pl": {"name": "Polish", "native_name": "Polski"},
    "ja": {"name": "Japanese", "native_name": "日本語"},
    "zh": {"name": "Chinese", "native_name": "中文"},
}


@dataclass(frozen=True)
class RightsMappingOptions:
    include_financials: bool = False
    include_contract: bool = False
    include_compliance: bool = False
    include_territorial_info: bool = False
    include_workflow: bool = False
    include_publication: bool = False
    include_licensee: bool = False
    include_transactions: bool = False


EXPORT_OPTIONS = RightsMappingOptions(
    include_financials=True,
    include_contract=True,
    include_compliance=True,
    include_territorial_info=True,
)


def get_territory_info(code: Optional[str]) -> Dict[str, Any]:
    return TERRITORIES.get(code) or {
        "name": code,
        "region": "Unknown",
        "currency": "USD",
        "legal_system": "Unknown",
        "market_size": "Unknown",
    }


def get_language_info(code: Optional[str]) -> Dict[str, Any]:
    return LANGUAGES.get(code) or {"name": code, "native_name": code}


def _as_datetime(value: Any) -> datetime:
    """date, datetime or ISO text → naive UTC datetime."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def calculate_duration(start: Any, end: Any) -> Optional[Dict[str, Any]]:
    """Term length; months are counted as 30 days and years as 365."""
    if not start or not end:
        return None
    delta = abs(_as_datetime(end) - _as_datetime(start))
    days = math.ceil(delta.total_seconds() / 86400)
    years = days // 365
    months = (days % 365) // 30
    return {
        "days": days,
        "months": months + years * 12,
        "years": years,
        "formatted": f"{years} years, {months} months",
    }


class RightsMapper:
    """Row ⇄ API conversions for publishing rights."""

    entity = "rights"

    # ── Row → API ─────────────────────────────────────────────────────────

    def to_api_response(
        self,
        row: Optional[Mapping[str, Any]],
        options: Optional[RightsMappingOptions] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Returns None for an absent row, and for a row that cannot be mapped
        (after logging it). Never raises.
        """
        if not row:
            return None
        options = options or RightsMappingOptions()
        rights_id = None

        try:
            rights_id = row.get("id")
            mapped = {name: row.get(name) for name in BASE_FIELDS}

            if options.include_financials:
                mapped["financial_terms"] = self.map_financial_terms(row)

            if options.include_contract and row.get("contract_details"):
                mapped["contract_details"] = safe_section(
                    "contract_details", self.map_contract_details, row["contract_details"], entity_id=rights_id
                )

            if options.include_compliance and row.get("compliance_data"):
                mapped["compliance_data"] = safe_section(
                    "compliance_data", self.map_compliance_data, row["compliance_data"], entity_id=rights_id
                )

            if options.include_territorial_info:
                mapped["territorial_info"] = self.map_territorial_info(row.get("territory"), row.get("language"))

            if options.include_workflow and row.get("workflow_data"):
                mapped["workflow_data"] = safe_section(
                    "workflow_data", self.map_workflow_data, row["workflow_data"], entity_id=rights_id
                )

            if options.include_publication and row.get("publication"):
                mapped["publication"] = self.map_publication_summary(row["publication"])

            if options.include_licensee and row.get("licensee"):
                mapped["licensee"] = self.map_licensee(row["licensee"])

            if options.include_transactions and row.get("transactions") is not None:
                transactions = row["transactions"]
                mapped["transactions"] = (
                    [self.map_transaction(t) for t in transactions if t]
                    if isinstance(transactions, list)
                    else []
                )

            return mapped

        except MAPPING_ERRORS as e:
            logger.error(
                "Error mapping rights to API response: %s",
                str(e),
                extra={"rights_id": str(rights_id) if rights_id else None},
            )
            return None

    def to_api_response_list(
        self, rows: Any, options: Optional[RightsMappingOptions] = None
    ) -> List[Dict[str, Any]]:
        return map_list(self.to_api_response, rows, options)

    def to_summary(self, row: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        if not row:
            return None
        return {name: row.get(name) for name in SUMMARY_FIELDS}

    def to_coverage_analysis(self, rows: Any, publication_id: Any) -> Optional[Dict[str, Any]]:
        """Groups rights by (type, territory, language) and flags conflicts."""
        if not isinstance(rows, (list, tuple)):
            return None

        # dicts as ordered sets: first-seen order is kept in the summary
        rights_types: Dict[Any, None] = {}
        territories: Dict[Any, None] = {}
        languages: Dict[Any, None] = {}
        coverage_map: Dict[str, List[Dict[str, Any]]] = {}

        for row in rows:
            rights_types[row.get("right_type")] = None
            territories[row.get("territory")] = None
            languages[row.get("language")] = None
            key = f"{row.get('right_type')}_{row.get('territory')}_{row.get('language')}"
            coverage_map.setdefault(key, []).append(self.to_summary(row))

        return {
            "publication_id": publication_id,
            "coverage_summary": {
                "rights_types": list(rights_types),
                "territories": list(territories),
                "languages": list(languages),
                "total_rights": len(rows),
            },
            "coverage_map": coverage_map,
            "gaps_analysis": self.analyze_coverage_gaps(rights_types, territories, languages),
            "conflicts_detected": self.detect_conflicts(rows),
        }

    def to_contract_format(self, row: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        if not row:
            return None
        publication = row.get("publication") or {}
        return {
            "contract_id": f"RGT-{row.get('id')}",
            "publication_title": publication.get("title") or "Unknown Publication",
            "right_details": {
                "type": row.get("right_type"),
                "territory": self.format_territory_for_contract(row.get("territory")),
                "language": self.format_language_for_contract(row.get("language")),
                "exclusivity": "Exclusive" if row.get("exclusive") else "Non-exclusive",
                "sublicensing": "Permitted" if row.get("sublicensing_allowed") else "Not permitted",
            },
            "term": {
                "start_date": row.get("start_date"),
                "end_date": row.get("end_date"),
                "duration": calculate_duration(row.get("start_date"), row.get("end_date")),
            },
            "financial_terms": self.map_financial_terms(row),
            "generated_at": utc_now_iso(),
            "status": row.get("status"),
        }

    def to_export_format(
        self, row: Optional[Mapping[str, Any]], fmt: str = "json"
    ) -> Optional[Dict[str, Any]]:
        if not row:
            return None
        if fmt == "contract":
            return self.to_contract_format(row)

        base = self.to_api_response(row, EXPORT_OPTIONS)
        if base is None:
            return None
        if fmt == "legal":
            return self.to_legal_export(base)
        if fmt == "csv":
            return self.to_csv_format(base)
        return base

    @staticmethod
    def to_legal_export(rights: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "rights_summary": {
                "id": rights.get("id"),
                "publication": rights.get("publication_id"),
                "scope": (
                    f"{rights.get('right_type')} rights for {rights.get('territory')} "
                    f"in {rights.get('language')}"
                ),
                "exclusivity": "Exclusive" if rights.get("exclusive") else "Non-exclusive",
                "term": f"{rights.get('start_date')} to {rights.get('end_date') or 'indefinite'}",
            },
            "legal_details": rights.get("contract_details"),
            "compliance_status": rights.get("compliance_data"),
            "territorial_info": rights.get("territorial_info"),
        }

    @staticmethod
    def to_csv_format(rights: Mapping[str, Any]) -> Dict[str, Any]:
        financial = rights.get("financial_terms") or {}
        return {
            "id": rights.get("id"),
            "publication_id": rights.get("publication_id"),
            "right_type": rights.get("right_type"),
            "territory": rights.get("territory"),
            "language": rights.get("language"),
            "license_type": rights.get("license_type"),
            "exclusive": "Yes" if rights.get("exclusive") else "No",
            "sublicensing_allowed": "Yes" if rights.get("sublicensing_allowed") else "No",
            "start_date": rights.get("start_date"),
            "end_date": rights.get("end_date") or "",
            "status": rights.get("status"),
            "royalty_rate": financial.get("royalty_rate") or "",
            "advance_amount": financial.get("advance_amount") or "",
            "currency": financial.get("currency") or "",
            "created_at": rights.get("created_at"),
            "updated_at": rights.get("updated_at"),
        }

    # ── API → row ─────────────────────────────────────────────────────────

    def from_api_create_request(self, data: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        """Full column set with defaults for the optional ones."""
        if not data:
            return None
        try:
            mapped: Dict[str, Any] = {
                "publication_id": data.get("publication_id"),
                "right_type": data.get("right_type"),
                "territory": data.get("territory"),
                "language": data.get("language"),
                "license_type": data.get("license_type"),
                "exclusive": data.get("exclusive") or False,
                "sublicensing_allowed": data.get("sublicensing_allowed") or False,
                "start_date": data.get("start_date"),
                "end_date": data.get("end_date") or None,
                "status": data.get("status") or "pending",
            }
            for name in ("royalty_rate", "advance_amount", "minimum_guarantee"):
                if data.get(name) is not None:
                    mapped[name] = data[name]
            if data.get("currency"):
                mapped["currency"] = data["currency"]
            for name in JSON_FIELDS:
                if data.get(name):
                    mapped[name] = dump_json_field(data[name])
            return mapped

        except MAPPING_ERRORS as e:
            logger.error("Error mapping rights create request: %s", str(e))
            return None

    def from_api_update_request(self, data: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        """Only fields present in `data` are returned, plus updated_at."""
        if data is None:
            return None
        try:
            mapped = pick_present(data, UPDATABLE_FIELDS)
            for name in JSON_FIELDS:
                if name in data:
                    mapped[name] = dump_json_field(data[name])
            mapped["updated_at"] = utc_now()
            return mapped

        except MAPPING_ERRORS as e:
            logger.error("Error mapping rights update request: %s", str(e))
            return None

    # ── Sections ──────────────────────────────────────────────────────────

    @staticmethod
    def map_financial_terms(row: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "royalty_rate": optional_float(row.get("royalty_rate")),
            "advance_amount": optional_float(row.get("advance_amount")),
            "minimum_guarantee": optional_float(row.get("minimum_guarantee")),
            "currency": row.get("currency") or "USD",
            "payment_terms": row.get("payment_terms") or "Net 30",
            "royalty_basis": row.get("royalty_basis") or "net_receipts",
        }

    @staticmethod
    def map_contract_details(value: Any) -> Optional[Dict[str, Any]]:
        details = parse_json_field(value, dict, "contract_details")
        if details is None:
            return None
        return {
            "contract_number": details.get("contract_number"),
            "signing_date": details.get("signing_date"),
            "effective_date": details.get("effective_date"),
            "governing_law": details.get("governing_law") or "United States",
            "jurisdiction": details.get("jurisdiction"),
            "arbitration_clause": details.get("arbitration_clause") or False,
            "renewal_terms": details.get("renewal_terms"),
            "termination_conditions": details.get("termination_conditions") or [],
            "force_majeure": details.get("force_majeure") or False,
            "warranty_clauses": details.get("warranty_clauses") or [],
        }

    @staticmethod
    def map_compliance_data(value: Any) -> Optional[Dict[str, Any]]:
        data = parse_json_field(value, dict, "compliance_data")
        if data is None:
            return None
        return {
            "legal_review_completed": data.get("legal_review_completed") or False,
            "compliance_checklist": data.get("compliance_checklist") or [],
            "regulatory_approvals": data.get("regulatory_approvals") or [],
            "tax_implications": data.get("tax_implications") or {},
            "export_restrictions": data.get("export_restrictions") or [],
            "content_restrictions": data.get("content_restrictions") or [],
            "territorial_limitations": data.get("territorial_limitations") or [],
            "last_compliance_check": data.get("last_compliance_check"),
            "compliance_status": data.get("compliance_status") or "pending",
        }

    @staticmethod
    def map_workflow_data(value: Any) -> Optional[Dict[str, Any]]:
        data = parse_json_field(value, dict, "workflow_data")
        if data is None:
            return None
        return {
            "current_stage": data.get("current_stage") or "draft",
            "workflow_steps": data.get("workflow_steps") or [],
            "approvals_required": data.get("approvals_required") or [],
            "approvals_received": data.get("approvals_received") or [],
            "pending_actions": data.get("pending_actions") or [],
            "workflow_history": data.get("workflow_history") or [],
            "estimated_completion": data.get("estimated_completion"),
            "assigned_to": data.get("assigned_to"),
            "priority": data.get("priority") or "medium",
        }

    @staticmethod
    def map_territorial_info(territory: Optional[str], language: Optional[str]) -> Dict[str, Any]:
        territory_info = get_territory_info(territory)
        language_info = get_language_info(language)
        return {
            "territory": {
                "code": territory,
                "name": territory_info.get("name"),
                "region": territory_info.get("region"),
                "currency": territory_info.get("currency"),
                "legal_system": territory_info.get("legal_system"),
            },
            "language": {
                "code": language,
                "name": language_info.get("name"),
                "native_name": language_info.get("native_name"),
                "direction": language_info.get("direction") or "ltr",
            },
            "market_info": {
                "market_size": territory_info.get("market_size"),
                "digital_adoption": territory_info.get("digital_adoption"),
                "key_distributors": territory_info.get("key_distributors") or [],
            },
        }

    @staticmethod
    def map_publication_summary(publication: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "id": publication.get("id"),
            "title": publication.get("title"),
            "publication_type": publication.get("publication_type"),
            "language": publication.get("language"),
            "status": publication.get("status"),
        }

    @staticmethod
    def map_licensee(licensee: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "id": licensee.get("id"),
            "name": licensee.get("name"),
            "type": licensee.get("type") or "publisher",
            "contact_info": {
                "email": licensee.get("email"),
                "phone": licensee.get("phone"),
                "address": licensee.get("address"),
            },
            "business_info": {
                "registration_number": licensee.get("registration_number"),
                "tax_id": licensee.get("tax_id"),
                "credit_rating": licensee.get("credit_rating"),
            },
        }

    @staticmethod
    def map_transaction(transaction: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "id": transaction.get("id"),
            "type": transaction.get("type"),
            "amount": to_float(transaction.get("amount")),
            "currency": transaction.get("currency"),
            "transaction_date": transaction.get("transaction_date"),
            "description": transaction.get("description"),
            "status": transaction.get("status") or "pending",
        }

    # ── Analysis ──────────────────────────────────────────────────────────

    @staticmethod
    def analyze_coverage_gaps(rights_types, territories, languages) -> Dict[str, Any]:
        # Gap detection needs a catalogue of target markets; only counts for now
        logger.debug(
            "Analyzing coverage gaps: %d types, %d territories, %d languages",
            len(rights_types),
            len(territories),
            len(languages),
        )
        return {
            "missing_territories": [],
            "missing_languages": [],
            "missing_rights_types": [],
            "recommendations": [],
            "coverage_stats": {
                "rights_types": len(rights_types),
                "territories": len(territories),
                "languages": len(languages),
            },
        }

    @staticmethod
    def detect_conflicts(rows: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Pairs of exclusive rights with an identical (type, territory, language)."""
        conflicts = []
        for i, first in enumerate(rows):
            for second in rows[i + 1:]:
                if (
                    first.get("right_type") == second.get("right_type")
                    and first.get("territory") == second.get("territory")
                    and first.get("language") == second.get("language")
                    and first.get("exclusive")
                    and second.get("exclusive")
                ):
                    conflicts.append(
                        {
                            "type": "exclusive_conflict",
                            "rights_ids": [first.get("id"), second.get("id")],
                            "description": "Multiple exclusive rights for same scope",
                        }
                    )
        return conflicts

    @staticmethod
    def format_territory_for_contract(territory: Optional[str]) -> Optional[str]:
        if territory == "WORLD":
            return "Worldwide"
        return get_territory_info(territory).get("name") or territory

    @staticmethod
    def format_language_for_contract(language: Optional[str]) -> Optional[str]:
        return get_language_info(language).get("name") or language

    @staticmethod
    def validate_mapped_data(mapped: Optional[Mapping[str, Any]], required_fields=()) -> bool:
        return validate_mapped_data(mapped, required_fields, entity="rights")


rights_mapper = RightsMapper()
