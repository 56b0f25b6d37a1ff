"""
HardbanRecords Publishing API - Rights Mapper Tests
====================================================

What we test:
    ✅ Base fields and optional sections per RightsMappingOptions
    ✅ A corrupt JSON blob blanks only its own section
    ✅ List mapping isolates bad rows
    ✅ Coverage analysis and exclusive conflict detection
    ✅ Contract, legal and CSV exports
    ✅ Create defaults and partial updates
"""

from datetime import date, datetime
from uuid import uuid4

from hardban_publishing.mappers.rights import (
    RightsMapper,
    RightsMappingOptions,
    calculate_duration,
    get_territory_info,
)


class TestToApiResponse:

    def setup_method(self):
        self.mapper = RightsMapper()

    def test_none_row(self):
        assert self.mapper.to_api_response(None) is None
        assert self.mapper.to_api_response({}) is None

    def test_base_fields_only_by_default(self, sample_rights_row):
        mapped = self.mapper.to_api_response(sample_rights_row)

        assert mapped["id"] == sample_rights_row["id"]
        assert mapped["territory"] == "US"
        assert mapped["exclusive"] is True
        assert "financial_terms" not in mapped
        assert "contract_details" not in mapped

    def test_financial_terms_with_defaults(self, sample_rights_row):
        mapped = self.mapper.to_api_response(sample_rights_row, RightsMappingOptions(include_financials=True))

        assert mapped["financial_terms"] == {
            "royalty_rate": 12.5,
            "advance_amount": 5000.0,
            "minimum_guarantee": None,
            "currency": "USD",
            "payment_terms": "Net 30",
            "royalty_basis": "net_receipts",
        }

    def test_contract_details_decoded(self, sample_rights_row):
        mapped = self.mapper.to_api_response(sample_rights_row, RightsMappingOptions(include_contract=True))

        details = mapped["contract_details"]
        assert details["contract_number"] == "C-001"
        assert details["governing_law"] == "New York"
        assert details["termination_conditions"] == []
        assert details["arbitration_clause"] is False

    def test_already_decoded_blob_accepted(self, sample_rights_row):
        row = {**sample_rights_row, "contract_details": {"contract_number": "C-002"}}
        mapped = self.mapper.to_api_response(row, RightsMappingOptions(include_contract=True))
        assert mapped["contract_details"]["contract_number"] == "C-002"
        assert mapped["contract_details"]["governing_law"] == "United States"

    def test_corrupt_blob_blanks_only_its_section(self, sample_rights_row):
        """Invalid JSON in one blob gives None for that section; the rest maps."""
        row = {**sample_rights_row, "contract_details": "{not json", "compliance_data": '{"compliance_status": "approved"}'}
        options = RightsMappingOptions(include_contract=True, include_compliance=True, include_financials=True)

        mapped = self.mapper.to_api_response(row, options)

        assert mapped is not None
        assert mapped["contract_details"] is None
        assert mapped["compliance_data"]["compliance_status"] == "approved"
        assert mapped["financial_terms"]["royalty_rate"] == 12.5

    def test_blob_of_wrong_type_blanks_section(self, sample_rights_row):
        row = {**sample_rights_row, "workflow_data": "[1, 2]"}
        mapped = self.mapper.to_api_response(row, RightsMappingOptions(include_workflow=True))
        assert mapped["workflow_data"] is None

    def test_workflow_defaults(self, sample_rights_row):
        row = {**sample_rights_row, "workflow_data": '{"assigned_to": "legal"}'}
        mapped = self.mapper.to_api_response(row, RightsMappingOptions(include_workflow=True))
        assert mapped["workflow_data"]["current_stage"] == "draft"
        assert mapped["workflow_data"]["priority"] == "medium"
        assert mapped["workflow_data"]["assigned_to"] == "legal"

    def test_territorial_info(self, sample_rights_row):
        mapped = self.mapper.to_api_response(sample_rights_row, RightsMappingOptions(include_territorial_info=True))

        info = mapped["territorial_info"]
        assert info["territory"]["name"] == "United States"
        assert info["territory"]["currency"] == "USD"
        assert info["language"]["name"] == "English"
        assert info["language"]["direction"] == "ltr"
        assert info["market_info"]["market_size"] == "Large"

    def test_unknown_territory_falls_back(self):
        assert get_territory_info("XX") == {
            "name": "XX",
            "region": "Unknown",
            "currency": "USD",
            "legal_system": "Unknown",
            "market_size": "Unknown",
        }

    def test_related_records(self, sample_rights_row):
        row = {
            **sample_rights_row,
            "publication": {"id": "p1", "title": "Night Songs", "extra": "ignored"},
            "licensee": {"id": "l1", "name": "Acme Books", "email": "rights@acme.test"},
            "transactions": [{"id": "t1", "amount": "150.50"}, None],
        }
        options = RightsMappingOptions(include_publication=True, include_licensee=True, include_transactions=True)

        mapped = self.mapper.to_api_response(row, options)

        assert mapped["publication"]["title"] == "Night Songs"
        assert "extra" not in mapped["publication"]
        assert mapped["licensee"]["type"] == "publisher"
        assert mapped["licensee"]["contact_info"]["email"] == "rights@acme.test"
        assert mapped["transactions"] == [
            {
                "id": "t1",
                "type": None,
                "amount": 150.5,
                "currency": None,
                "transaction_date": None,
                "description": None,
                "status": "pending",
            }
        ]

    def test_input_row_not_modified(self, sample_rights_row):
        snapshot = dict(sample_rights_row)
        self.mapper.to_api_response(sample_rights_row, RightsMappingOptions(include_contract=True))
        assert sample_rights_row == snapshot


class TestListAndSummary:

    def setup_method(self):
        self.mapper = RightsMapper()

    def test_list_drops_unmappable_rows(self, sample_rights_row):
        assert len(self.mapper.to_api_response_list([sample_rights_row, None, {}])) == 1

    def test_list_of_non_list(self):
        assert self.mapper.to_api_response_list(None) == []
        assert self.mapper.to_api_response_list("rows") == []

    def test_summary_fields(self, sample_rights_row):
        summary = self.mapper.to_summary(sample_rights_row)
        assert set(summary) == {
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
        }


def right(right_type="ebook", territory="US", language="en", exclusive=True):
    return {
        "id": uuid4(),
        "right_type": right_type,
        "territory": territory,
        "language": language,
        "exclusive": exclusive,
    }


class TestCoverageAnalysis:

    def setup_method(self):
        self.mapper = RightsMapper()

    def test_groups_by_scope(self):
        publication_id = uuid4()
        rows = [right(), right(exclusive=False), right(territory="DE", language="de")]

        analysis = self.mapper.to_coverage_analysis(rows, publication_id)

        assert analysis["publication_id"] == publication_id
        assert analysis["coverage_summary"] == {
            "rights_types": ["ebook"],
            "territories": ["US", "DE"],
            "languages": ["en", "de"],
            "total_rights": 3,
        }
        assert len(analysis["coverage_map"]["ebook_US_en"]) == 2
        assert analysis["gaps_analysis"]["coverage_stats"]["territories"] == 2

    def test_two_exclusive_rights_conflict(self):
        first, second = right(), right()
        conflicts = self.mapper.to_coverage_analysis([first, second], uuid4())["conflicts_detected"]
        assert conflicts == [
            {
                "type": "exclusive_conflict",
                "rights_ids": [first["id"], second["id"]],
                "description": "Multiple exclusive rights for same scope",
            }
        ]

    def test_non_exclusive_does_not_conflict(self):
        rows = [right(), right(exclusive=False)]
        assert self.mapper.detect_conflicts(rows) == []

    def test_overlapping_territories_not_detected(self):
        """Scopes are compared exactly: WORLD does not overlap US."""
        rows = [right(territory="US"), right(territory="WORLD")]
        assert self.mapper.detect_conflicts(rows) == []

    def test_three_way_conflict_reports_each_pair(self):
        assert len(self.mapper.detect_conflicts([right(), right(), right()])) == 3

    def test_non_list_input(self):
        assert self.mapper.to_coverage_analysis(None, uuid4()) is None


class TestExports:

    def setup_method(self):
        self.mapper = RightsMapper()

    def test_contract_format(self, sample_rights_row):
        contract = self.mapper.to_contract_format(sample_rights_row)

        assert contract["contract_id"] == f"RGT-{sample_rights_row['id']}"
        assert contract["publication_title"] == "Unknown Publication"
        assert contract["right_details"] == {
            "type": "ebook",
            "territory": "United States",
            "language": "English",
            "exclusivity": "Exclusive",
            "sublicensing": "Not permitted",
        }
        assert contract["term"]["duration"] == {
            "days": 731,
            "months": 24,
            "years": 2,
            "formatted": "2 years, 0 months",
        }
        assert contract["generated_at"].endswith("Z")

    def test_contract_worldwide(self, sample_rights_row):
        contract = self.mapper.to_export_format({**sample_rights_row, "territory": "WORLD"}, "contract")
        assert contract["right_details"]["territory"] == "Worldwide"

    def test_json_export_includes_sections(self, sample_rights_row):
        exported = self.mapper.to_export_format(sample_rights_row, "json")
        assert "financial_terms" in exported
        assert "territorial_info" in exported
        assert exported["contract_details"]["contract_number"] == "C-001"

    def test_legal_export(self, sample_rights_row):
        legal = self.mapper.to_export_format(sample_rights_row, "legal")
        assert legal["rights_summary"]["scope"] == "ebook rights for US in en"
        assert legal["rights_summary"]["term"] == "2024-01-01 to 2026-01-01"
        assert legal["legal_details"]["contract_number"] == "C-001"

    def test_legal_export_open_ended(self, sample_rights_row):
        legal = self.mapper.to_export_format({**sample_rights_row, "end_date": None}, "legal")
        assert legal["rights_summary"]["term"] == "2024-01-01 to indefinite"

    def test_csv_export(self, sample_rights_row):
        csv_row = self.mapper.to_export_format(sample_rights_row, "csv")
        assert csv_row["exclusive"] == "Yes"
        assert csv_row["sublicensing_allowed"] == "No"
        assert csv_row["royalty_rate"] == 12.5
        assert csv_row["currency"] == "USD"

    def test_export_of_missing_row(self):
        assert self.mapper.to_export_format(None, "csv") is None

    def test_duration_needs_both_dates(self):
        assert calculate_duration(date(2024, 1, 1), None) is None

    def test_duration_accepts_iso_text(self):
        assert calculate_duration("2024-01-01", "2024-03-01T00:00:00Z")["days"] == 60


class TestFromApiRequests:

    def setup_method(self):
        self.mapper = RightsMapper()

    def test_create_defaults(self):
        publication_id = uuid4()
        mapped = self.mapper.from_api_create_request(
            {
                "publication_id": publication_id,
                "right_type": "audio",
                "territory": "GB",
                "language": "en",
                "license_type": "standard",
                "start_date": date(2025, 1, 1),
                "contract_details": {"contract_number": "C-9"},
            }
        )

        assert mapped["status"] == "pending"
        assert mapped["exclusive"] is False
        assert mapped["sublicensing_allowed"] is False
        assert mapped["end_date"] is None
        assert mapped["contract_details"] == '{"contract_number": "C-9"}'
        assert "royalty_rate" not in mapped

    def test_create_keeps_zero_amounts(self):
        mapped = self.mapper.from_api_create_request({"right_type": "print", "royalty_rate": 0})
        assert mapped["royalty_rate"] == 0

    def test_create_from_empty(self):
        assert self.mapper.from_api_create_request(None) is None
        assert self.mapper.from_api_create_request({}) is None

    def test_update_only_present_fields(self):
        mapped = self.mapper.from_api_update_request({"status": "active", "unknown": "dropped"})

        assert set(mapped) == {"status", "updated_at"}
        assert isinstance(mapped["updated_at"], datetime)
        assert mapped["updated_at"].tzinfo is not None

    def test_update_explicit_null_clears(self):
        mapped = self.mapper.from_api_update_request({"end_date": None, "workflow_data": None})
        assert mapped["end_date"] is None
        assert mapped["workflow_data"] is None

    def test_update_encodes_blobs(self):
        mapped = self.mapper.from_api_update_request({"compliance_data": {"compliance_status": "approved"}})
        assert mapped["compliance_data"] == '{"compliance_status": "approved"}'

    def test_update_from_empty(self):
        assert set(self.mapper.from_api_update_request({})) == {"updated_at"}
        assert self.mapper.from_api_update_request(None) is None

    def test_validate_mapped_data(self, sample_rights_row):
        assert self.mapper.validate_mapped_data(sample_rights_row, ["id", "territory"]) is True
        assert self.mapper.validate_mapped_data({"id": 1}, ["territory"]) is False
        assert self.mapper.validate_mapped_data(None) is False

    def test_response_feeds_back_into_update(self, sample_rights_row):
        """A response without blobs maps back to updatable columns only."""
        row = {**sample_rights_row, "contract_details": None}
        response = self.mapper.to_api_response(row, RightsMappingOptions())

        mapped = self.mapper.from_api_update_request(response)

        assert set(mapped) == {
            "right_type",
            "territory",
            "language",
            "license_type",
            "exclusive",
            "sublicensing_allowed",
            "start_date",
            "end_date",
            "status",
            "updated_at",
        }
        assert mapped["territory"] == "US"
        assert mapped["updated_at"] > row["updated_at"]
