"""Tests for the Recorder façade over snapshots and versions repositories."""
from __future__ import annotations

import pytest

from termsarchive.errors import RecordValidationError
from termsarchive.recorder import Recorder
from tests.factories import FETCH_DATE, InMemoryRepository

SNAPSHOT = {
    "service_id": "Example",
    "terms_type": "Terms of Service",
    "fetch_date": FETCH_DATE,
    "mime_type": "text/html",
    "content": "<p>Terms</p>",
}

VERSION = {
    "service_id": "Example",
    "terms_type": "Terms of Service",
    "fetch_date": FETCH_DATE,
    "content": "Terms",
    "snapshot_ids": ["abc1234"],
}


def test_requires_both_repositories():
    with pytest.raises(ValueError, match="both for versions and snapshots"):
        Recorder(versions_repository=InMemoryRepository())


@pytest.mark.asyncio
async def test_initialize_and_finalize_both_repositories(recorder, snapshots_repository, versions_repository):
    await recorder.initialize()
    await recorder.finalize()

    assert snapshots_repository.initialize_calls == versions_repository.initialize_calls == 1
    assert snapshots_repository.finalize_calls == versions_repository.finalize_calls == 1


class TestRecordSnapshot:
    @pytest.mark.asyncio
    async def test_first_then_unchanged_then_changed(self, recorder, snapshots_repository):
        first = await recorder.record_snapshot(**SNAPSHOT)
        unchanged = await recorder.record_snapshot(**SNAPSHOT)
        changed = await recorder.record_snapshot(**{**SNAPSHOT, "content": "<p>New terms</p>"})

        assert first.id is not None and first.is_first_record
        assert unchanged.id is None
        assert changed.id is not None and not changed.is_first_record
        assert len(snapshots_repository.commits) == 2

    @pytest.mark.asyncio
    async def test_document_id_is_recorded(self, recorder):
        await recorder.record_snapshot(**SNAPSHOT, document_id="cookies")

        snapshot = await recorder.get_latest_snapshot("Example", "Terms of Service", "cookies")

        assert snapshot.document_id == "cookies"
        assert snapshot.content == "<p>Terms</p>"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["service_id", "terms_type", "fetch_date", "mime_type", "content"])
    async def test_required_fields(self, recorder, snapshots_repository, field):
        with pytest.raises(RecordValidationError):
            await recorder.record_snapshot(**{**SNAPSHOT, field: None})
        assert snapshots_repository.commits == []


class TestRecordVersion:
    @pytest.mark.asyncio
    async def test_version_defaults_to_markdown(self, recorder, versions_repository):
        result = await recorder.record_version(**VERSION)

        [version] = versions_repository.records
        assert result.is_first_record
        assert version.mime_type == "text/markdown"
        assert version.snapshot_ids == ("abc1234",)

    @pytest.mark.asyncio
    async def test_single_snapshot_id_is_accepted(self, recorder, versions_repository):
        params = {key: value for key, value in VERSION.items() if key != "snapshot_ids"}

        await recorder.record_version(**params, snapshot_id="abc1234")

        assert versions_repository.records[0].snapshot_ids == ("abc1234",)

    @pytest.mark.asyncio
    async def test_snapshot_ids_are_an_ordered_set(self, recorder, versions_repository):
        await recorder.record_version(**{**VERSION, "snapshot_ids": ["abc1234", "def5678", "abc1234"]})

        assert versions_repository.records[0].snapshot_ids == ("abc1234", "def5678")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("snapshot_ids", [None, []])
    async def test_snapshot_lineage_is_mandatory(self, recorder, versions_repository, snapshot_ids):
        with pytest.raises(RecordValidationError, match="snapshot ID is required"):
            await recorder.record_version(**{**VERSION, "snapshot_ids": snapshot_ids})
        assert versions_repository.commits == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["service_id", "terms_type", "fetch_date", "content", "mime_type"])
    async def test_required_fields(self, recorder, field):
        with pytest.raises(RecordValidationError):
            await recorder.record_version(**{**VERSION, field: None})

    @pytest.mark.asyncio
    async def test_unchanged_version_returns_no_id(self, recorder):
        await recorder.record_version(**VERSION)
        result = await recorder.record_version(**{**VERSION, "snapshot_ids": ["def5678"]})

        assert result.id is None

    @pytest.mark.asyncio
    async def test_record_refilter_is_extract_only(self, recorder, versions_repository):
        await recorder.record_version(**VERSION)
        result = await recorder.record_refilter(**{**VERSION, "content": "Terms, refiltered"})

        latest = await recorder.get_latest_version("Example", "Terms of Service")
        assert result.id == latest.id
        assert latest.is_extract_only
        assert latest.is_refilter
        assert versions_repository.commits[-1][0].subject.startswith("Apply technical or declaration upgrade on")


@pytest.mark.asyncio
async def test_legacy_finder_name_returns_latest_snapshot(recorder, snapshots_repository):
    result = await recorder.record_snapshot(**SNAPSHOT)

    latest = await snapshots_repository.find_latest_by_service_id_and_document_type("Example", "Terms of Service")

    assert latest.id == result.id
    assert latest.content == "<p>Terms</p>"
