# =============================================================================
# Unit Tests — Partner Record Mapping, Directory Cards, TSV, Excel
# =============================================================================
#
# Pure functions from memopyk.services.partners. No database or network.
# =============================================================================

from __future__ import annotations

from datetime import UTC, datetime
from io import BytesIO

import openpyxl
import pytest
from pydantic import ValidationError

from memopyk.models.requests import PartnerCreateRequest, PartnerIntake
from memopyk.services.partners import (
    EXPORT_COLUMNS,
    TsvFormatError,
    build_partners_workbook,
    clean_updates,
    intake_to_record,
    join_list,
    manual_to_record,
    paginate,
    parse_list,
    parse_tsv,
    summarize,
    to_directory_card,
    tsv_row_to_record,
)

NOW = datetime(2025, 3, 14, 9, 30, tzinfo=UTC)


def _intake(**overrides) -> dict:
    payload = {
        "partner_name": "Atelier Mémoire Vive",
        "email": "contact@memoirevive.fr",
        "phone": "+33 1 23 45 67 89",
        "website": "memoirevive.fr",
        "address": {"street": "3 rue des Lilas", "city": "Lyon", "country": "fr"},
        "services": ["Photo", "Film"],
        "photo_formats": ["Prints", "Slides 35mm"],
        "film_formats": ["Super 8"],
        "consent_listed": True,
        "csrfToken": "3f9a0c1e5b7d2a4c",
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# List helpers
# ---------------------------------------------------------------------------


class TestListHelpers:
    def test_join_list(self):
        assert join_list(["VHS", "Hi8"]) == "VHS, Hi8"
        assert join_list([]) == ""
        assert join_list(None) == ""

    def test_parse_list_trims_and_drops_empties(self):
        assert parse_list(" VHS ,  Hi8,, ") == ["VHS", "Hi8"]

    def test_parse_list_strips_wrapping_quotes(self):
        assert parse_list('"Prints, Slides 35mm"') == ["Prints", "Slides 35mm"]

    def test_parse_list_blank(self):
        assert parse_list("") == []
        assert parse_list("   ") == []
        assert parse_list(None) == []


# ---------------------------------------------------------------------------
# Intake validation and mapping
# ---------------------------------------------------------------------------


class TestPartnerIntake:
    def test_valid_payload(self):
        intake = PartnerIntake.model_validate(_intake())
        assert intake.csrf_token == "3f9a0c1e5b7d2a4c"
        assert intake.locale == "fr"

    def test_consent_required_in_french(self):
        with pytest.raises(ValidationError) as exc_info:
            PartnerIntake.model_validate(_intake(consent_listed=False))
        assert "répertorié" in str(exc_info.value)

    def test_consent_required_in_english(self):
        with pytest.raises(ValidationError) as exc_info:
            PartnerIntake.model_validate(_intake(consent_listed=False, locale="en"))
        assert "agree to be listed" in str(exc_info.value)

    def test_at_least_one_format(self):
        with pytest.raises(ValidationError) as exc_info:
            PartnerIntake.model_validate(_intake(photo_formats=[], film_formats=[]))
        assert "format" in str(exc_info.value)

    def test_bad_email(self):
        with pytest.raises(ValidationError):
            PartnerIntake.model_validate(_intake(email="not-an-email"))

    @pytest.mark.parametrize("website", ["https://example.com", "www.example.fr"])
    def test_website_accepts_url_or_domain(self, website):
        assert PartnerIntake.model_validate(_intake(website=website)).website == website

    def test_website_rejects_garbage(self):
        with pytest.raises(ValidationError):
            PartnerIntake.model_validate(_intake(website="not a site"))

    def test_unknown_service_rejected(self):
        with pytest.raises(ValidationError):
            PartnerIntake.model_validate(_intake(services=["Audio"]))


class TestIntakeToRecord:
    def test_record_is_pending_and_hidden(self):
        record = intake_to_record(PartnerIntake.model_validate(_intake()), NOW)
        assert record["status"] == "Pending"
        assert record["is_active"] is False
        assert record["show_on_map"] is False
        assert record["phone_public"] is False
        assert record["consent"] is True
        assert record["lat"] is None and record["lng"] is None
        assert record["slug"] == ""
        assert record["timestamp"] == NOW

    def test_lists_are_joined(self):
        record = intake_to_record(PartnerIntake.model_validate(_intake()), NOW)
        assert record["photo_formats"] == "Prints, Slides 35mm"
        assert record["film_formats"] == "Super 8"

    def test_address_is_flattened(self):
        record = intake_to_record(PartnerIntake.model_validate(_intake()), NOW)
        assert record["address"] == "3 rue des Lilas"
        assert record["city"] == "Lyon"
        assert record["country"] == "FR"

    def test_video_formats_used_when_no_cassettes(self):
        intake = PartnerIntake.model_validate(_intake(video_formats=["VHS", "Hi8"]))
        assert intake_to_record(intake, NOW)["video_cassettes"] == "VHS, Hi8"

    def test_video_cassettes_take_precedence(self):
        intake = PartnerIntake.model_validate(
            _intake(video_formats=["VHS"], video_cassettes=["Betamax"]),
        )
        assert intake_to_record(intake, NOW)["video_cassettes"] == "Betamax"


class TestManualToRecord:
    def test_consent_and_timestamp(self):
        record = manual_to_record(PartnerCreateRequest(partner_name="Studio 8"), NOW)
        assert record["partner_name"] == "Studio 8"
        assert record["consent"] is True
        assert record["timestamp"] == NOW
        assert record["status"] == "Pending"


# ---------------------------------------------------------------------------
# TSV import
# ---------------------------------------------------------------------------


TSV_HEADER = "\t".join([
    "Timestamp", "Partner Name", "Email", "Email_Public", "Phone",
    "Phone_Public", "City", "Country", "Photo Formats", "lat", "lng",
])


class TestParseTsv:
    def test_requires_data_row(self):
        with pytest.raises(TsvFormatError):
            parse_tsv(TSV_HEADER)

    def test_rows_keyed_by_header(self):
        text = TSV_HEADER + "\n" + "\t".join([
            "2024-05-01 10:00:00", "Studio 8", "a@b.fr", "TRUE", "0102",
            "FALSE", "Paris", "FR", "Prints", "48.85", "2.35",
        ])
        rows = parse_tsv(text)
        assert len(rows) == 1
        assert rows[0]["Partner Name"] == "Studio 8"
        assert rows[0]["lat"] == "48.85"

    def test_short_rows_padded(self):
        rows = parse_tsv(TSV_HEADER + "\r\nStudio 8\tx")
        assert rows[0]["Timestamp"] == "Studio 8"
        assert rows[0]["lng"] == ""


class TestTsvRowToRecord:
    def _row(self, **overrides):
        row = {
            "Timestamp": "2024-05-01 10:00:00",
            "Partner Name": "Studio 8",
            "Email": "a@b.fr",
            "Email_Public": "FALSE",
            "Phone_Public": "FALSE",
            "Complément d'adresse": "Bâtiment B",
            "Country": "FR",
            "lat": "48,85",
            "lng": "2.35",
        }
        row.update(overrides)
        return row

    def test_rows_are_approved_and_visible(self):
        record = tsv_row_to_record(self._row(), NOW)
        assert record["status"] == "Approved"
        assert record["is_active"] is True
        assert record["show_on_map"] is True

    def test_coordinates_accept_decimal_comma(self):
        record = tsv_row_to_record(self._row(), NOW)
        assert record["lat"] == pytest.approx(48.85)
        assert record["lng"] == pytest.approx(2.35)

    def test_french_address_line2_header(self):
        assert tsv_row_to_record(self._row(), NOW)["address_line2"] == "Bâtiment B"

    def test_email_public_makes_phone_public(self):
        record = tsv_row_to_record(self._row(Email_Public="TRUE"), NOW)
        assert record["phone_public"] is True
        assert record["email_public"] is True

    def test_timestamp_parsed(self):
        record = tsv_row_to_record(self._row(), NOW)
        assert record["timestamp"] == datetime(2024, 5, 1, 10, 0, tzinfo=UTC)

    def test_missing_name_raises(self):
        with pytest.raises(ValueError, match="Partner Name"):
            tsv_row_to_record(self._row(**{"Partner Name": ""}), NOW)

    def test_bad_coordinate_raises(self):
        with pytest.raises(ValueError, match="lat"):
            tsv_row_to_record(self._row(lat="north"), NOW)


# ---------------------------------------------------------------------------
# Updates, cards, pagination, summary
# ---------------------------------------------------------------------------


class TestCleanUpdates:
    def test_drops_unknown_and_managed_keys(self):
        cleaned = clean_updates({"id": 9, "created_at": "x", "city": "Nice", "hack": 1})
        assert cleaned == {"city": "Nice"}

    def test_coerces_booleans(self):
        cleaned = clean_updates({"is_active": 1, "show_on_map": 0})
        assert cleaned == {"is_active": True, "show_on_map": False}


def _partner(**overrides) -> dict:
    partner = {
        "id": 4,
        "partner_name": "Studio 8",
        "email": "hello@studio8.fr",
        "email_public": False,
        "phone": "0102030405",
        "phone_public": True,
        "city": "Paris",
        "country": "FR",
        "photo_formats": "Prints, Slides 35mm",
        "film_formats": "",
        "other_film": "9.5mm",
        "video_cassettes": "",
        "delivery": "USB, Cloud",
        "status": "Approved",
        "is_active": True,
        "show_on_map": True,
        "lat": 48.85,
        "lng": 2.35,
    }
    partner.update(overrides)
    return partner


class TestDirectoryCard:
    def test_services_derived_from_formats(self):
        card = to_directory_card(_partner())
        assert card["services"] == ["Photo", "Film"]
        assert card["formats"] == {
            "photo": ["Prints", "Slides 35mm"], "film": [], "video": [],
        }
        assert card["delivery"] == ["USB", "Cloud"]

    def test_public_card_hides_private_contact(self):
        card = to_directory_card(_partner())
        assert card["email"] == ""
        assert card["phone"] == "0102030405"

    def test_admin_card_keeps_contact(self):
        card = to_directory_card(_partner(), public=False)
        assert card["email"] == "hello@studio8.fr"

    def test_name_and_position(self):
        card = to_directory_card(_partner())
        assert card["name"] == "Studio 8"
        assert (card["lat"], card["lng"]) == (48.85, 2.35)


class TestPaginate:
    def test_total_pages_rounds_up(self):
        result = paginate(list(range(25)), page=3, limit=10)
        assert result["partners"] == [20, 21, 22, 23, 24]
        assert result["total"] == 25
        assert result["totalPages"] == 3

    def test_empty(self):
        result = paginate([], page=1, limit=1000)
        assert result["partners"] == []
        assert result["totalPages"] == 0

    def test_page_past_end_is_empty(self):
        assert paginate([1, 2], page=5, limit=1)["partners"] == []


class TestSummarize:
    def test_ten_newest_with_total(self):
        partners = [_partner(id=i) for i in range(1, 13)]
        summary = summarize(partners)
        assert summary["count"] == 12
        assert [p["id"] for p in summary["partners"]] == list(range(12, 2, -1))
        assert summary["partners"][0]["name"] == "Studio 8"


# ---------------------------------------------------------------------------
# Excel export
# ---------------------------------------------------------------------------


class TestWorkbook:
    def test_headers_and_boolean_cells(self):
        content = build_partners_workbook([_partner(timestamp=NOW)])
        wb = openpyxl.load_workbook(BytesIO(content))
        ws = wb["Partners"]

        headers = [cell.value for cell in ws[1]]
        assert headers == [header for header, _ in EXPORT_COLUMNS]

        row = {header: cell.value for header, cell in zip(headers, ws[2], strict=True)}
        assert row["Partner Name"] == "Studio 8"
        assert row["Email Public"] == "FALSE"
        assert row["Active"] == "TRUE"
        assert row["Timestamp"] == NOW.isoformat()
        assert row["Latitude"] == 48.85
