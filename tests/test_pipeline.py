"""Tests for the upload admission pipeline."""

import asyncio

import pytest

from fakes import FakeCapabilities, image_candidate, pdf_candidate
from noteneo.errors import CapabilityUnavailable, DuplicateRejected, PolicyRejected
from noteneo.fingerprint import document_surrogate, fingerprint, fingerprint_upload
from noteneo.ledger import ReputationLedger
from noteneo.pipeline import AdmissionOutcome, AdmissionPipeline, AdmissionStage, DuplicateRegistry


class RecordingRegistry(DuplicateRegistry):
    def __init__(self, store):
        super().__init__(store)
        self.looked_up = []

    async def find_by_fingerprint(self, fp):
        self.looked_up.append(fp)
        return await super().find_by_fingerprint(fp)


def make_pipeline(store, caps, timeout=None):
    registry = RecordingRegistry(store)
    return AdmissionPipeline(caps, caps, registry, gate_timeout=timeout), registry


@pytest.mark.asyncio
async def test_admits_and_walks_every_stage_in_order(memory_store, caps):
    pipeline, registry = make_pipeline(memory_store, caps)
    candidate = image_candidate(tags=["Calculus", "calculus ", "limits"])

    decision = await pipeline.run(candidate)

    assert decision.admitted
    assert decision.trail == [
        AdmissionStage.IDLE,
        AdmissionStage.FINGERPRINTING,
        AdmissionStage.POLICY_AUDIT,
        AdmissionStage.QUALITY_SCORING,
        AdmissionStage.DUPLICATE_CHECK,
        AdmissionStage.ADMITTED,
    ]
    assert caps.calls == ["classify", "quality"]
    assert decision.draft.fingerprint == fingerprint(candidate.data)
    assert decision.draft.category == "image"
    assert decision.draft.tags == ["calculus", "limits"]
    assert decision.draft.contributor_ids == ["u1"]
    assert decision.draft.quality.score == 7
    assert decision.as_error() is None


@pytest.mark.asyncio
async def test_duplicate_lookup_uses_fingerprint_of_current_upload(memory_store, caps):
    pipeline, registry = make_pipeline(memory_store, caps)
    first = pdf_candidate(title="Week 1")
    second = pdf_candidate(title="Week 2")

    await pipeline.run(first)
    await pipeline.run(second)

    assert registry.looked_up == [fingerprint(first.gate_content()), fingerprint(second.gate_content())]


@pytest.mark.asyncio
async def test_policy_rejection_short_circuits(memory_store):
    caps = FakeCapabilities(educational=False)
    pipeline, registry = make_pipeline(memory_store, caps)

    decision = await pipeline.run(image_candidate())

    assert decision.outcome == AdmissionOutcome.REJECTED
    assert decision.stage == AdmissionStage.POLICY_AUDIT
    assert decision.reason == "This looks like a meme, not study notes."
    assert decision.verdict.suggested_tags  # returned by the gate, never applied
    assert caps.calls == ["classify"]
    assert registry.looked_up == []
    assert decision.draft is None
    with pytest.raises(PolicyRejected):
        decision.raise_for_outcome()


@pytest.mark.asyncio
@pytest.mark.parametrize("failing", ["classify", "quality"])
async def test_capability_failure_blocks_instead_of_passing(memory_store, failing):
    caps = FakeCapabilities(fail=failing)
    pipeline, registry = make_pipeline(memory_store, caps)

    decision = await pipeline.run(image_candidate())

    assert decision.outcome == AdmissionOutcome.BLOCKED
    assert decision.retryable
    assert decision.draft is None
    assert registry.looked_up == []
    with pytest.raises(CapabilityUnavailable):
        decision.raise_for_outcome()


@pytest.mark.asyncio
async def test_unexpected_capability_error_blocks(memory_store, caps):
    async def broken(*args, **kwargs):
        raise ConnectionResetError("socket closed")

    caps.assess_quality = broken
    pipeline, _ = make_pipeline(memory_store, caps)

    decision = await pipeline.run(image_candidate())

    assert decision.outcome == AdmissionOutcome.BLOCKED
    assert decision.stage == AdmissionStage.QUALITY_SCORING


@pytest.mark.asyncio
async def test_gate_timeout_blocks(memory_store):
    caps = FakeCapabilities(delay=0.5)
    pipeline, registry = make_pipeline(memory_store, caps, timeout=0.05)

    decision = await pipeline.run(image_candidate())

    assert decision.outcome == AdmissionOutcome.BLOCKED
    assert decision.stage == AdmissionStage.POLICY_AUDIT
    assert "too long" in decision.reason
    assert registry.looked_up == []


@pytest.mark.asyncio
async def test_per_call_timeout_overrides_default(memory_store):
    caps = FakeCapabilities(delay=0.2)
    pipeline, _ = make_pipeline(memory_store, caps, timeout=0.01)

    decision = await pipeline.run(image_candidate(), timeout=2)

    assert decision.admitted


@pytest.mark.asyncio
async def test_duplicate_rejected_with_reference(memory_store, caps):
    pipeline, _ = make_pipeline(memory_store, caps)
    first = await pipeline.run(image_candidate(uploader="u1"))
    existing = await ReputationLedger(memory_store).credit_publish(first.draft)

    decision = await pipeline.run(image_candidate(uploader="u2"))

    assert decision.outcome == AdmissionOutcome.REJECTED
    assert decision.stage == AdmissionStage.DUPLICATE_CHECK
    assert decision.duplicate_of.id == existing.id
    assert not decision.retryable
    with pytest.raises(DuplicateRejected) as info:
        decision.raise_for_outcome()
    assert info.value.existing.id == existing.id


@pytest.mark.asyncio
async def test_infringing_entry_does_not_block(memory_store, caps):
    pipeline, _ = make_pipeline(memory_store, caps)
    ledger = ReputationLedger(memory_store)
    first = await pipeline.run(image_candidate(uploader="u1"))
    existing = await ledger.credit_publish(first.draft)
    await ledger.debit_takedown(existing)

    decision = await pipeline.run(image_candidate(uploader="u2"))

    assert decision.admitted


@pytest.mark.asyncio
async def test_concurrent_identical_uploads_are_tolerated(memory_store, caps):
    pipeline, _ = make_pipeline(memory_store, caps)

    decisions = await asyncio.gather(
        pipeline.run(image_candidate(uploader="u1")),
        pipeline.run(image_candidate(uploader="u2")),
    )

    # Both see an empty registry; the race is accepted
    assert all(d.admitted for d in decisions)


@pytest.mark.asyncio
async def test_document_fingerprint_matches_upload_rule(memory_store, caps):
    pipeline, registry = make_pipeline(memory_store, caps)
    candidate = pdf_candidate(title="Thermo", filename="week3.pdf")

    decision = await pipeline.run(candidate)

    expected = fingerprint_upload(b"unrelated bytes", "application/pdf", "Thermo", "week3.pdf")
    assert expected == fingerprint(document_surrogate("Thermo", "week3.pdf"))
    assert decision.draft.fingerprint == candidate.fingerprint() == expected
    assert registry.looked_up == [expected]
    assert caps.calls == ["classify", "quality"]
