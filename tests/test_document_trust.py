"""Unit tests for the document trust pipeline, extractor and claimant messages."""

import json
from unittest.mock import MagicMock

import fitz  # PyMuPDF
import pytest

from claim_intake.models import DocumentRecord
from claim_intake.services.document_messages import (
    generate_reupload_message,
    get_document_type_name,
    validation_message,
)
from claim_intake.services.document_trust import (
    DEGRADED_WARNING,
    DocumentExtraction,
    DocumentTrustContext,
    DocumentTrustPipeline,
)
from claim_intake.services.extraction import DocumentExtractor
from claim_intake.services.pdf_parser import extract_text

PIR_TEXT = (
    "Passenger: Asha Rao\nFlight: SA-204\nFrom: BLR To: DEL\n"
    "Date: 2026-03-14\nBaggage Tag: SA123456\n"
)

CONTEXT = DocumentTrustContext(
    coverage_type="Baggage Loss",
    coverage_type_id="baggage_loss",
    incident_date="2026-03-14",
    incident_location="Bengaluru",
    claimed_amount=800.0,
    profile_name="Asha Rao",
)


def _document(path: str = "/tmp/pir.txt") -> DocumentRecord:
    return DocumentRecord(id="doc-1", session_id="s-1", file_name="pir.txt", file_path=path, mime_type="text/plain")


def _extraction(**overrides) -> DocumentExtraction:
    values = {
        "document_type": "airline_pir",
        "extracted_entities": {
            "passengerName": "Asha Rao",
            "flightNumber": "SA-204",
            "from": "BLR",
            "to": "DEL",
            "date": "2026-03-14",
        },
        "recognized_text": PIR_TEXT,
        "authenticity_score": 0.9,
    }
    values.update(overrides)
    return DocumentExtraction(**values)


def _pipeline(extraction: DocumentExtraction | Exception) -> tuple[DocumentTrustPipeline, MagicMock]:
    extractor = MagicMock()
    if isinstance(extraction, Exception):
        extractor.side_effect = extraction
    else:
        extractor.return_value = extraction
    return DocumentTrustPipeline(extractor), extractor


# ---------------------------------------------------------------------------
# Status resolution
# ---------------------------------------------------------------------------

class TestTrustStatus:
    def test_clean_document_is_valid(self) -> None:
        pipeline, extractor = _pipeline(_extraction())
        document = _document()

        report = pipeline.process(document, ["airline_pir"], CONTEXT)

        assert report.status == "valid"
        assert report.accepted
        assert report.errors == [] and report.warnings == []
        assert report.name_matches is True
        assert report.location_alignment.aligns is True
        assert report.user_message.startswith("Your Property Irregularity Report (PIR) has been successfully")
        extractor.assert_called_once_with(document, "airline_pir", CONTEXT)

    def test_wrong_type_requires_reupload(self) -> None:
        pipeline, _ = _pipeline(_extraction(document_type="boarding_pass"))

        report = pipeline.process(_document(), ["airline_pir"], CONTEXT)

        assert report.status == "reupload_required"
        assert report.type_matches is False
        assert "I need a airline_pir" in report.reupload_reason
        assert "Property Irregularity Report (PIR)" in report.reupload_guidance

    def test_tampering_is_invalid(self) -> None:
        pipeline, _ = _pipeline(_extraction(tampering_detected=True))

        report = pipeline.process(_document(), ["airline_pir"], CONTEXT)

        assert report.status == "invalid"
        assert "Document may have been tampered with" in report.errors
        assert report.reupload_reason == "Document appears to have been modified"

    def test_low_authenticity_is_invalid(self) -> None:
        pipeline, _ = _pipeline(_extraction(authenticity_score=0.3))

        report = pipeline.process(_document(), ["airline_pir"], CONTEXT)

        assert report.status == "invalid"
        assert report.reupload_reason == "Document could not be verified as authentic"

    def test_hallucinated_entities_lower_authenticity(self) -> None:
        entities = {"passengerName": "John Smith", "flightNumber": "XX-999"}
        pipeline, _ = _pipeline(_extraction(extracted_entities=entities, authenticity_score=0.95))

        report = pipeline.process(_document(), ["airline_pir"], None)

        assert report.extraction.authenticity_score == 0.5
        assert report.verification.overall_confidence == 0.0
        assert report.status == "needs_review"
        assert report.verified_entities() == {}

    def test_irrelevant_document(self) -> None:
        pipeline, _ = _pipeline(_extraction(is_relevant=False))

        report = pipeline.process(_document(), ["airline_pir"], CONTEXT)

        assert report.status == "reupload_required"
        assert report.reupload_guidance == "Please upload a document related to your Baggage Loss claim"

    def test_name_mismatch(self) -> None:
        context = DocumentTrustContext(profile_name="Priya Menon", incident_location="Bengaluru")
        pipeline, _ = _pipeline(_extraction())

        report = pipeline.process(_document(), ["airline_pir"], context)

        assert report.status == "reupload_required"
        assert report.reupload_reason == "The name on the document doesn't match your profile name"
        assert '"Priya Menon"' in report.reupload_guidance

    def test_date_mismatch(self) -> None:
        context = DocumentTrustContext(incident_date="2026-03-01", profile_name="Asha Rao")
        pipeline, _ = _pipeline(_extraction())

        report = pipeline.process(_document(), ["airline_pir"], context)

        assert report.status == "reupload_required"
        assert report.reupload_reason == (
            "The date on the document (2026-03-14) does not match your incident date (2026-03-01)"
        )

    def test_location_mismatch(self) -> None:
        context = DocumentTrustContext(incident_location="Chennai", profile_name="Asha Rao")
        pipeline, _ = _pipeline(_extraction())

        report = pipeline.process(_document(), ["airline_pir"], context)

        assert report.status == "reupload_required"
        assert report.reupload_reason.startswith("The location on the document (BLR, DEL)")

    def test_context_mismatch_reported_by_extractor(self) -> None:
        pipeline, _ = _pipeline(_extraction(context_matches=False))

        report = pipeline.process(_document(), ["airline_pir"], CONTEXT)

        assert report.status == "reupload_required"
        assert "does not match your claim details" in report.reupload_reason

    def test_context_mismatch_ignored_without_context(self) -> None:
        pipeline, _ = _pipeline(_extraction(context_matches=False))

        assert pipeline.process(_document(), ["airline_pir"]).status == "valid"

    def test_extractor_warning_needs_review(self) -> None:
        pipeline, _ = _pipeline(_extraction(warnings=["Photo is slightly blurred"]))

        report = pipeline.process(_document(), ["airline_pir"], CONTEXT)

        assert report.status == "needs_review"
        assert report.accepted
        assert "Photo is slightly blurred" in report.user_message

    def test_amount_overrun_is_a_warning(self) -> None:
        entities = {**_extraction().extracted_entities, "amount": 1000}
        text = PIR_TEXT + "Amount: 1000\n"
        pipeline, _ = _pipeline(_extraction(extracted_entities=entities, recognized_text=text))

        report = pipeline.process(_document(), ["airline_pir"], CONTEXT)

        assert report.status == "needs_review"
        assert report.amount_alignment.aligns is False
        assert any(w.startswith("Document shows 25.0% more than claimed") for w in report.warnings)

    def test_extractor_failure_degrades_to_review(self) -> None:
        pipeline, _ = _pipeline(RuntimeError("LLM down"))

        report = pipeline.process(_document(), ["airline_pir"], CONTEXT)

        assert report.status == "needs_review"
        assert report.extraction_failed is True
        assert report.detected_type == "airline_pir"
        assert report.warnings == [DEGRADED_WARNING]
        assert report.to_dict()["extraction"]["is_relevant"] is False

    def test_unrecognized_text_skips_verification(self) -> None:
        pipeline, _ = _pipeline(_extraction(recognized_text=""))

        report = pipeline.process(_document(), ["airline_pir"], None)

        assert report.verification is None
        assert report.verified_entities()["flightNumber"] == "SA-204"


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class TestDocumentExtractor:
    def _reply(self, **overrides) -> str:
        reply = {
            "documentType": "airline_pir",
            "extractedEntities": {"flightNumber": "SA-204", "pirNumber": None, "to": ""},
            "authenticityScore": 0.92,
            "tamperingDetected": False,
            "isRelevant": True,
            "contextMatches": True,
            "errors": [],
            "warnings": ["", "Edge cropped"],
        }
        reply.update(overrides)
        return json.dumps(reply)

    def test_parses_reply_and_keeps_file_text(self) -> None:
        llm = MagicMock(return_value=self._reply())
        reader = MagicMock(return_value=PIR_TEXT)

        extraction = DocumentExtractor(llm=llm, text_reader=reader)(_document(), "airline_pir", CONTEXT)

        assert extraction.document_type == "airline_pir"
        assert extraction.extracted_entities == {"flightNumber": "SA-204"}
        assert extraction.recognized_text == PIR_TEXT
        assert extraction.is_legitimate is True
        assert extraction.warnings == ["Edge cropped"]
        reader.assert_called_once_with("/tmp/pir.txt", "text/plain")

        system_prompt, user_content = llm.call_args.args
        assert "EXPECTED DOCUMENT TYPE: airline_pir" in system_prompt
        assert "- Incident Location: Bengaluru" in system_prompt
        assert user_content == PIR_TEXT

    def test_scores_are_clamped_and_defaulted(self) -> None:
        reader = MagicMock(return_value=PIR_TEXT)

        high = DocumentExtractor(llm=MagicMock(return_value=self._reply(authenticityScore=7)), text_reader=reader)
        assert high(_document()).authenticity_score == 1.0

        junk = DocumentExtractor(llm=MagicMock(return_value=self._reply(authenticityScore="n/a")), text_reader=reader)
        assert junk(_document()).authenticity_score == 0.7

    def test_missing_type_falls_back_to_expected(self) -> None:
        extractor = DocumentExtractor(
            llm=MagicMock(return_value=self._reply(documentType=None, tamperingDetected=True)),
            text_reader=MagicMock(return_value=PIR_TEXT),
        )

        extraction = extractor(_document(), "airline_pir")

        assert extraction.document_type == "airline_pir"
        assert extraction.tampering_detected is True
        assert extraction.is_legitimate is False

    def test_unreadable_file_raises(self, tmp_path) -> None:
        extractor = DocumentExtractor(llm=MagicMock())

        with pytest.raises(ValueError, match="File not found"):
            extractor(_document(str(tmp_path / "missing.txt")))


class TestExtractText:
    def test_pdf_pages_are_joined(self, tmp_path) -> None:
        path = tmp_path / "pir.pdf"
        doc = fitz.open()
        for text in ("Passenger: Asha Rao", "Flight: SA-204"):
            page = doc.new_page()
            page.insert_text((72, 72), text, fontsize=11)
        doc.save(str(path))
        doc.close()

        text = extract_text(str(path), "application/pdf")

        assert "Asha Rao" in text and "SA-204" in text

    def test_text_file(self, tmp_path) -> None:
        path = tmp_path / "note.txt"
        path.write_text("  Baggage Tag: SA123456 \n", encoding="utf-8")

        assert extract_text(str(path)) == "Baggage Tag: SA123456"

    def test_empty_text_file_raises(self, tmp_path) -> None:
        path = tmp_path / "empty.txt"
        path.write_text("   ", encoding="utf-8")

        with pytest.raises(ValueError, match="No extractable text"):
            extract_text(str(path), "text/plain")

    def test_image_without_text_layer_raises(self, tmp_path) -> None:
        path = tmp_path / "photo.png"
        path.write_bytes(b"\x89PNG")

        with pytest.raises(ValueError, match="No text extraction available"):
            extract_text(str(path), "image/png")


# ---------------------------------------------------------------------------
# Claimant messages
# ---------------------------------------------------------------------------

class TestDocumentMessages:
    def test_type_names(self) -> None:
        assert get_document_type_name("airline_pir") == "Property Irregularity Report (PIR)"
        assert get_document_type_name("travel_voucher") == "Travel Voucher"
        assert get_document_type_name(None) == "Document"

    def test_reupload_message_names_both_types(self) -> None:
        message = generate_reupload_message("boarding_pass", ["airline_pir"])
        assert "This appears to be a Boarding Pass, but I need a Property Irregularity Report (PIR)." in message

    def test_invalid_message_is_blocking(self) -> None:
        message = validation_message("invalid", "airline_pir", "airline_pir", ["Bad scan"], [])
        assert message.is_blocking
        assert message.as_text().startswith("We found the following issues with your document: Bad scan")
