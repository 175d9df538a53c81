"""
Tests for legallens/session.py
"""

import dataclasses

import pytest

from legallens.errors import ExtractionFailed
from legallens.extraction_client import RemoteExtractionClient
from legallens.session import (
    BUSY_MESSAGE,
    MODEL_ERROR_MESSAGES,
    Document,
    SessionController,
    default_extractor,
    next_id,
)

RENT_QUOTE = "The monthly rent is set at $1,500"


@pytest.fixture
def controller(fake_model, settings, scheduler):
    return SessionController(fake_model, settings=settings, scheduler=scheduler)


@pytest.fixture
def lease(controller, sample_contract):
    return controller.upload("lease.txt", sample_contract.encode("utf-8"))


@pytest.mark.unit
def test_next_id_is_monotonic():
    """Test ids increase strictly."""
    ids = [next_id() for _ in range(50)]

    assert ids == sorted(set(ids))


@pytest.mark.unit
def test_document_from_upload_round_trips_bytes():
    """Test uploaded bytes survive base64 storage."""
    document = Document.from_upload("Scan.PDF", b"%PDF-1.7 data")

    assert document.format.value == "pdf"
    assert document.raw_bytes() == b"%PDF-1.7 data"
    assert document.data_uri().startswith("data:application/pdf;base64,")


@pytest.mark.unit
def test_default_extractor(settings):
    """A base URL switches extraction to the remote client."""
    assert default_extractor(settings).func.__name__ == "extract_text_from_bytes"

    remote = default_extractor(dataclasses.replace(settings, extraction_base_url="http://extractor:8000"))
    assert isinstance(remote.__self__, RemoteExtractionClient)


@pytest.mark.integration
def test_upload_selects_and_summarizes(controller, lease, fake_model):
    """Upload selects the document and shows its summary."""
    assert controller.selected is lease
    assert lease.canonical_text.startswith("RESIDENTIAL LEASE AGREEMENT This agreement")
    assert lease.summary.startswith("<p>summary result")
    assert [m.sender for m in controller.messages] == ["ai"]
    assert controller.messages[0].content == lease.summary
    assert fake_model.calls[0]["operation"] == "summary"
    assert fake_model.calls[0]["name"] == "lease.txt"
    assert fake_model.calls[0]["text"] == lease.canonical_text
    assert controller.loading is False


@pytest.mark.integration
def test_too_short_upload_reports_error_without_model_call(controller, fake_model):
    """An unusable upload becomes an error message and the model is never called."""
    document = controller.upload("note.txt", b"hi")

    message = controller.messages[-1]
    assert message.is_error is True
    assert "empty" in message.content
    assert document.extraction_error == message.content
    assert document.canonical_text is None
    assert fake_model.calls == []


@pytest.mark.integration
def test_summary_is_cached_until_refresh(controller, lease, fake_model):
    """Test the summary is generated once unless refreshed."""
    controller.summarize(lease.id)
    assert len(fake_model.calls) == 1

    controller.summarize(lease.id, refresh=True)
    assert len(fake_model.calls) == 2


@pytest.mark.integration
def test_cached_summary_is_not_repeated(controller, lease):
    """Asking again for the summary already on screen returns it without appending."""
    shown = controller.messages[-1]

    message = controller.summarize(lease.id)

    assert message is shown
    assert len(controller.messages) == 1

    controller.ask(lease.id, "When is rent due?")
    controller.summarize(lease.id)
    assert controller.messages[-1].content == lease.summary
    assert len(controller.messages) == 4


@pytest.mark.integration
def test_select_restarts_conversation_with_summary(controller, lease):
    """Switching documents restarts the conversation with the summary."""
    controller.ask(lease.id, "When is rent due?")
    other = controller.upload("other.txt", b"A second agreement between other parties.")
    assert controller.selected is other

    controller.select(lease.id)

    assert [m.content for m in controller.messages] == [lease.summary]


@pytest.mark.integration
def test_ask_and_define_append_user_and_ai_messages(controller, lease, fake_model):
    """Questions and definitions add a user message and a reply."""
    answer = controller.ask(lease.id, "  When is rent due?  ")
    definition = controller.define_term(lease.id, "security deposit")

    assert answer.content.startswith("<p>answer result")
    assert definition.content.startswith("<p>definition result")
    assert [(m.sender, m.content[:20]) for m in controller.messages[1:]] == [
        ("user", "When is rent due?"),
        ("ai", "<p>answer result<sup"),
        ("user", "Define: security dep"),
        ("ai", "<p>definition result"),
    ]
    assert fake_model.calls[1]["question"] == "When is rent due?"


@pytest.mark.integration
def test_risks(controller, lease):
    """Test risk analysis."""
    message = controller.analyze_risks(lease.id)

    assert message.content.startswith("<p>risks result")
    assert controller.messages[-2].content == "Identify risks and key clauses"


@pytest.mark.unit
def test_blank_question_and_term_rejected(controller, lease):
    """Test blank questions and terms are rejected."""
    with pytest.raises(ValueError):
        controller.ask(lease.id, "   ")
    with pytest.raises(ValueError):
        controller.define_term(lease.id, "")


@pytest.mark.integration
def test_model_failure_becomes_error_message(failing_model, settings, scheduler, sample_contract):
    """Model failures become fixed error messages."""
    controller = SessionController(failing_model, settings=settings, scheduler=scheduler)
    document = controller.upload("lease.txt", sample_contract.encode("utf-8"))

    message = controller.messages[-1]
    assert message.is_error is True
    assert message.content == MODEL_ERROR_MESSAGES["summary"]
    assert document.summary is None
    assert controller.loading is False

    controller.ask(document.id, "Who pays for water?")
    assert controller.messages[-1].content == MODEL_ERROR_MESSAGES["answer"]


@pytest.mark.integration
def test_busy_flag_rejects_concurrent_operations(controller, lease, fake_model):
    """Test an operation during loading is refused."""
    before = list(controller.messages)
    controller.loading = True

    message = controller.ask(lease.id, "Is a pet allowed?")

    assert message.content == BUSY_MESSAGE
    assert message.delivered is False
    assert controller.messages == before
    assert len(fake_model.calls) == 1


@pytest.mark.integration
def test_upload_while_loading_is_rejected(controller, lease, fake_model):
    """An upload during an in-flight request leaves documents, selection and chat untouched."""
    documents = dict(controller.documents)
    messages = list(controller.messages)
    controller.loading = True

    with pytest.raises(ValueError, match="wait"):
        controller.upload("other.txt", b"A second agreement between other parties.")

    assert controller.documents == documents
    assert controller.selected is lease
    assert controller.messages == messages
    assert len(fake_model.calls) == 1


@pytest.mark.integration
def test_stale_result_is_not_shown_in_other_conversation(settings, scheduler, sample_contract):
    """A result for a deselected document is kept but not shown."""
    class SwitchingModel:
        """Summarizes the first document while the user switches to the second."""

        def __init__(self):
            self.controller = None
            self.switch_to = None

        def generate_summary(self, text, name):
            self.controller.select(self.switch_to)
            return f'<p>Summary of {name}<sup data-quote="{text[:20]}">1</sup></p>'

    model = SwitchingModel()
    controller = SessionController(model, settings=settings, scheduler=scheduler)
    model.controller = controller
    first = controller.add_document("lease.txt", sample_contract.encode("utf-8"))
    second = controller.add_document("other.txt", b"A second agreement between other parties.")
    model.switch_to = second.id
    controller.select(first.id)

    message = controller.summarize(first.id)

    assert message.delivered is False
    assert controller.selected is second
    assert controller.messages == []
    # The result is still kept for when the user comes back
    assert first.summary.startswith("<p>Summary of lease.txt")
    controller.select(first.id)
    assert controller.messages[0].content == first.summary


@pytest.mark.integration
def test_extractor_failure_from_injected_extractor(fake_model, settings, scheduler):
    """Test error handling for an injected extractor."""
    def broken_extractor(data, filename):
        raise ExtractionFailed("Could not open PDF: broken xref")

    controller = SessionController(fake_model, settings=settings, extractor=broken_extractor, scheduler=scheduler)
    controller.upload("scan.pdf", b"%PDF-1.4")

    assert controller.messages[-1].content == "Could not open PDF: broken xref"
    assert fake_model.calls == []


@pytest.mark.integration
def test_locate_citation_by_label_highlights_and_expires(controller, lease, scheduler):
    """Test a citation label highlights its quote until expiry."""
    before = controller.view_html(lease.id)

    action = controller.locate_citation(lease.id, label="1")

    assert action.kind == "scroll_to_match"
    assert action.match.text == RENT_QUOTE
    assert f'id="{action.target}"' in controller.view_html(lease.id)

    scheduler.fire_all()
    assert controller.view_html(lease.id) == before


@pytest.mark.integration
def test_locate_citation_unknown_label_scrolls_to_top(controller, lease):
    """Test an unknown label scrolls to top."""
    assert controller.find_quote("9") is None
    assert controller.locate_citation(lease.id, label="9").kind == "scroll_to_top"


@pytest.mark.integration
def test_locate_citation_in_pdf_offers_source(controller, make_pdf):
    """Test PDF citations offer the source."""
    document = controller.upload("lease.pdf", make_pdf(["The monthly rent is set at $1,500, due monthly."]))

    assert controller.locate_citation(document.id, quote=RENT_QUOTE).kind == "open_source"


@pytest.mark.integration
def test_docx_upload_has_display_html(controller, make_docx):
    """DOCX uploads get display HTML that citations can highlight."""
    document = controller.upload(
        "agreement.docx",
        make_docx([("heading", "Services Agreement"), ("p", "The supplier shall deliver the goods monthly.")]),
    )

    assert "<h1>Services Agreement</h1>" in controller.display_html(document.id)
    assert controller.locate_citation(document.id, quote="deliver the goods").kind == "scroll_to_match"


@pytest.mark.unit
def test_display_html_is_none_for_text(controller, lease):
    """Test plain text has no display HTML."""
    assert controller.display_html(lease.id) is None


@pytest.mark.integration
def test_delete_selected_document_selects_remaining(controller, lease):
    """Deleting the selection falls back to the next document."""
    other = controller.upload("other.txt", b"A second agreement between other parties.")

    controller.delete(other.id)

    assert controller.selected is lease
    assert [m.content for m in controller.messages] == [lease.summary]

    controller.delete(lease.id)
    assert controller.selected is None
    assert controller.messages == []
    with pytest.raises(KeyError):
        controller.delete(lease.id)


@pytest.mark.unit
def test_add_document_limits(fake_model, settings, scheduler):
    """Empty, oversized and over-limit documents are refused."""
    controller = SessionController(
        fake_model,
        settings=dataclasses.replace(settings, max_documents=1, max_upload_mb=1),
        scheduler=scheduler,
    )

    with pytest.raises(ValueError, match="empty"):
        controller.add_document("empty.txt", b"")
    with pytest.raises(ValueError, match="too large"):
        controller.add_document("big.txt", b"x" * (1024 * 1024 + 1))

    controller.add_document("one.txt", b"The first and only document allowed.")
    with pytest.raises(ValueError, match="limit"):
        controller.add_document("two.txt", b"A second document over the limit.")


@pytest.mark.integration
def test_contract_date_quote_highlights_original_casing(controller):
    """The highlight keeps the document's casing."""
    document = controller.upload("contract.txt", b"The contract is valid until June 1, 2024.")

    action = controller.locate_citation(document.id, quote="the contract is valid until June 1, 2024")

    assert action.kind == "scroll_to_match"
    assert action.match.text == "The contract is valid until June 1, 2024"
    assert f'>{action.match.text}</mark>' in controller.view_html(document.id)


@pytest.mark.integration
@pytest.mark.parametrize("start,end", [(0, 27), (40, 95), (120, 200), (-60, None)])
def test_canonical_substrings_locate_in_rendered_view(controller, lease, start, end):
    """Quotes drawn from the single-spaced canonical text are found in the line-broken rendering."""
    quote = lease.canonical_text[start:end]

    action = controller.locate_citation(lease.id, quote=quote)

    assert action.kind == "scroll_to_match"
    assert " ".join(action.match.text.split()).casefold() == " ".join(quote.split()).casefold()
