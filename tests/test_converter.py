"""Unit tests for ConversionPipeline and the sender/company derivation helpers."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from fakes import FakeTaskStore, make_message
from inbox_tasker.core.converter import ConversionPipeline, derive_company, derive_sender_name
from inbox_tasker.core.exceptions import ConversionError
from inbox_tasker.core.models import RawMessage, TaskRecord


class TestDeriveSenderName:
    """Display name first, then the address local part."""

    def test_uses_display_name(self) -> None:
        assert derive_sender_name("Jane Buyer", "jane@acme.com") == "Jane Buyer"

    def test_builds_name_from_local_part(self) -> None:
        assert derive_sender_name("", "john.doe@acme.com") == "John Doe"

    def test_splits_on_underscore_and_dash(self) -> None:
        assert derive_sender_name("  ", "mary_ann-smith@acme.com") == "Mary Ann Smith"

    def test_unknown_sender_without_address(self) -> None:
        assert derive_sender_name("", "not-an-address") == "Unknown Sender"


class TestDeriveCompany:
    """Company inferred from the domain unless it is a free-mail provider."""

    def test_corporate_domain(self) -> None:
        assert derive_company("jane@acme-corp.com", "") == "Acme-corp"

    def test_multi_label_domain_with_country_suffix(self) -> None:
        assert derive_company("jane@sales.acme.co.uk", "") == "Sales Acme"

    def test_does_not_strip_inside_a_label(self) -> None:
        assert derive_company("bob@mail.company.io", "") == "Mail Company"

    def test_free_mail_uses_signature(self) -> None:
        body = "Please send pricing.\n\nBest regards,\nGlobex Industries\n"
        assert derive_company("someone@gmail.com", body) == "Globex Industries"

    def test_free_mail_uses_corporate_suffix_line(self) -> None:
        body = "Hi there\nInitech LLC\n"
        assert derive_company("someone@yahoo.com", body) == "Initech"

    def test_free_mail_without_signature_falls_back_to_domain_label(self) -> None:
        assert derive_company("someone@hotmail.com", "just a question") == "hotmail"

    def test_unknown_company_without_domain(self) -> None:
        assert derive_company("", "") == "Unknown Company"


class TestBuildRequest:
    """build_request() derives every task field deterministically."""

    def test_title_and_sender_fields(self, sample_message: RawMessage) -> None:
        pipeline = ConversionPipeline(FakeTaskStore())
        request = pipeline.build_request(sample_message)

        assert request.title == "New Inquiry - Quote request for 500 units"
        assert request.sender_email == "jane.buyer@acme-corp.com"
        assert request.sender_name == "Jane Buyer"
        assert request.sender_company == "Acme-corp"
        assert request.gmail_message_id == "msg_test_001"
        assert request.status == "New"
        assert request.board_title == "Sales Tracker Board"
        assert request.group_title == "New Inquiry"
        assert request.subject == "Quote request for 500 units"

    def test_inquiry_id_uses_received_time_and_company_code(self) -> None:
        received = datetime(2024, 1, 15, 10, 30, 0, tzinfo=UTC)
        message = make_message("m1", received_at=received, sender_organization="Big Box Stores")
        request = ConversionPipeline(FakeTaskStore()).build_request(message)

        millis = int(received.timestamp() * 1000)
        assert request.inquiry_id == f"INQ-{millis}-BIGBOX"
        assert request.sender_company == "Big Box Stores"

    def test_same_message_gives_same_request(self, sample_message: RawMessage) -> None:
        pipeline = ConversionPipeline(FakeTaskStore())
        assert pipeline.build_request(sample_message) == pipeline.build_request(sample_message)

    def test_empty_subject(self) -> None:
        request = ConversionPipeline(FakeTaskStore()).build_request(make_message("m1", subject=""))
        assert request.title == "New Inquiry - (no subject)"

    def test_sender_email_falls_back_to_from_header(self) -> None:
        message = make_message(
            "m1", sender_email="", sender_name="", from_address="ops.lead@initech.com"
        )
        request = ConversionPipeline(FakeTaskStore()).build_request(message)
        assert request.sender_email == "ops.lead@initech.com"
        assert request.sender_name == "Ops Lead"
        assert request.sender_company == "Initech"

    def test_description_contains_sections(self, sample_message: RawMessage) -> None:
        request = ConversionPipeline(FakeTaskStore()).build_request(sample_message)
        assert request.description.startswith("**Original Email:**")
        assert "From: Jane Buyer <jane.buyer@acme-corp.com>" in request.description
        assert "Company: Acme-corp" in request.description
        assert f"Inquiry ID: {request.inquiry_id}" in request.description
        assert request.description.endswith("Hello, we would like a quote.")

    def test_body_excerpt_is_truncated(self) -> None:
        message = make_message("m1", body_text="x" * 50)
        pipeline = ConversionPipeline(FakeTaskStore(), body_excerpt_chars=10)
        request = pipeline.build_request(message)
        assert request.description.endswith("x" * 10 + "…")

    def test_custom_board_and_group(self, sample_message: RawMessage) -> None:
        pipeline = ConversionPipeline(FakeTaskStore(), board_title="Leads", group_title="Inbox")
        request = pipeline.build_request(sample_message)
        assert request.board_title == "Leads"
        assert request.group_title == "Inbox"


class TestConvert:
    """convert() submits exactly once and wraps store failures."""

    @pytest.mark.asyncio
    async def test_returns_created_task(self, sample_message: RawMessage) -> None:
        store = FakeTaskStore()
        task = await ConversionPipeline(store).convert(sample_message)

        assert isinstance(task, TaskRecord)
        assert task.gmail_message_id == "msg_test_001"
        assert store.attempted_message_ids == ["msg_test_001"]

    @pytest.mark.asyncio
    async def test_store_failure_raises_conversion_error(self, sample_message: RawMessage) -> None:
        store = FakeTaskStore(fail_ids={"msg_test_001"})

        with pytest.raises(ConversionError, match="Quote request"):
            await ConversionPipeline(store).convert(sample_message)

        assert store.attempted_message_ids == ["msg_test_001"]

    @pytest.mark.asyncio
    async def test_unparsed_message_is_never_submitted(self) -> None:
        store = FakeTaskStore()

        with pytest.raises(ConversionError, match="Could not parse message bad"):
            await ConversionPipeline(store).convert(RawMessage.unparsed("bad", "no payload"))

        assert store.requests == []

    @pytest.mark.asyncio
    async def test_failure_chains_store_exception(self, sample_message: RawMessage) -> None:
        store = FakeTaskStore(fail_ids={"msg_test_001"})

        with pytest.raises(ConversionError) as exc_info:
            await ConversionPipeline(store).convert(sample_message)

        assert "insert failed" in str(exc_info.value.__cause__)
