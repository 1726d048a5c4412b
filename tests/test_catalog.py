"""Tests for channel resolution and catalog enumeration."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from tests.conftest import CHANNEL_ID, FakeCatalogProvider, make_video
from tuberag.catalog import (
    CatalogEnumerator,
    clean_identifier,
    is_short,
    looks_like_channel_id,
    parse_duration,
)
from tuberag.core.exceptions import ChannelNotFoundError, QuotaExhaustedError
from tuberag.core.models import VideoDetails


def create_enumerator(provider, scheduler, **kwargs) -> CatalogEnumerator:
    return CatalogEnumerator(provider, scheduler, **kwargs)


class TestPureHelpers:
    @pytest.mark.parametrize(
        ("duration", "seconds"),
        [
            ("PT1H2M3S", 3723),
            ("PT45S", 45),
            ("PT10M", 600),
            ("PT2H", 7200),
            ("P1DT1S", 86401),
            ("P0D", 0),
            (None, None),
            ("", None),
            ("PT", None),
            ("P", None),
            ("1:02:03", None),
            ("garbage", None),
        ],
    )
    def test_parse_duration(self, duration: str | None, seconds: int | None) -> None:
        assert parse_duration(duration) == seconds

    def test_is_short_threshold(self) -> None:
        assert is_short("PT59S") is True
        assert is_short("PT60S") is False
        assert is_short("PT1M30S", threshold_seconds=120) is True

    def test_unparseable_duration_is_never_short(self) -> None:
        assert is_short(None) is False
        assert is_short("not-a-duration") is False

    @pytest.mark.parametrize(
        ("identifier", "expected"),
        [
            (CHANNEL_ID, True),
            ("UCshort", False),
            ("XXabcdefghijklmnopqrstuv", False),
            ("UCabcdefghijklmnopqrstu!", False),
        ],
    )
    def test_looks_like_channel_id(self, identifier: str, expected: bool) -> None:
        assert looks_like_channel_id(identifier) is expected

    @pytest.mark.parametrize(
        ("identifier", "expected"),
        [
            ("@somehandle", "somehandle"),
            ("  @somehandle  ", "somehandle"),
            (f"https://www.youtube.com/channel/{CHANNEL_ID}", CHANNEL_ID),
            (f"https://www.youtube.com/channel/{CHANNEL_ID}/videos", CHANNEL_ID),
            ("https://www.youtube.com/@somehandle/videos", "somehandle"),
            ("https://youtube.com/c/SomeName", "SomeName"),
            ("youtube.com/user/legacyname", "legacyname"),
            ("plain name", "plain name"),
        ],
    )
    def test_clean_identifier(self, identifier: str, expected: str) -> None:
        assert clean_identifier(identifier) == expected


class TestResolveChannel:
    @pytest.mark.asyncio
    async def test_canonical_id_needs_no_lookup(self, scheduler) -> None:
        provider = FakeCatalogProvider()
        enumerator = create_enumerator(provider, scheduler)

        assert await enumerator.resolve_channel(f"  {CHANNEL_ID} ") == CHANNEL_ID
        assert provider.search_calls == []
        assert scheduler.state.units_used == 0

    @pytest.mark.asyncio
    async def test_channel_url_needs_no_lookup(self, scheduler) -> None:
        provider = FakeCatalogProvider()
        enumerator = create_enumerator(provider, scheduler)

        resolved = await enumerator.resolve_channel(f"https://youtube.com/channel/{CHANNEL_ID}")

        assert resolved == CHANNEL_ID
        assert provider.search_calls == []

    @pytest.mark.asyncio
    async def test_handle_is_searched_and_metered(self, scheduler) -> None:
        provider = FakeCatalogProvider()
        enumerator = create_enumerator(provider, scheduler)

        assert await enumerator.resolve_channel("@somehandle") == CHANNEL_ID
        assert provider.search_calls == ["somehandle"]
        assert scheduler.state.units_used == 100

    @pytest.mark.asyncio
    async def test_search_failure_falls_back_to_cleaned_identifier(self, scheduler) -> None:
        provider = FakeCatalogProvider()
        provider.search_channel = AsyncMock(side_effect=RuntimeError("not found (404)"))
        enumerator = create_enumerator(provider, scheduler)

        assert await enumerator.resolve_channel("@somehandle") == "somehandle"

    @pytest.mark.asyncio
    async def test_no_match_falls_back_to_cleaned_identifier(self, scheduler) -> None:
        provider = FakeCatalogProvider()
        provider.search_channel = AsyncMock(return_value=None)
        enumerator = create_enumerator(provider, scheduler)

        assert await enumerator.resolve_channel("@somehandle") == "somehandle"

    @pytest.mark.asyncio
    async def test_quota_exhaustion_propagates(self, scheduler) -> None:
        scheduler.sync_exhausted()
        enumerator = create_enumerator(FakeCatalogProvider(), scheduler)

        with pytest.raises(QuotaExhaustedError):
            await enumerator.resolve_channel("@somehandle")


class TestListing:
    @pytest.mark.asyncio
    async def test_channel_info(self, scheduler) -> None:
        enumerator = create_enumerator(FakeCatalogProvider(channel_name="Compilers"), scheduler)

        info = await enumerator.get_channel_info(CHANNEL_ID)

        assert info.name == "Compilers"
        assert scheduler.state.units_used == 1

    @pytest.mark.asyncio
    async def test_missing_channel_raises(self, scheduler) -> None:
        enumerator = create_enumerator(FakeCatalogProvider(channel_exists=False), scheduler)

        with pytest.raises(ChannelNotFoundError):
            await enumerator.get_channel_info(CHANNEL_ID)

    @pytest.mark.asyncio
    async def test_pages_until_no_token(self, scheduler) -> None:
        videos = [make_video(f"v{i}") for i in range(7)]
        provider = FakeCatalogProvider(videos, page_size=3)
        enumerator = create_enumerator(provider, scheduler)

        listed = await enumerator.list_videos(CHANNEL_ID)

        assert [v.video_id for v in listed] == [f"v{i}" for i in range(7)]
        assert provider.page_calls == [None, "3", "6"]
        # One channels.list plus three playlistItems.list calls.
        assert scheduler.state.units_used == 4

    @pytest.mark.asyncio
    async def test_metadata_is_fetched_in_batches(self, scheduler) -> None:
        provider = FakeCatalogProvider(durations={"v0": "PT30S"})
        enumerator = create_enumerator(provider, scheduler, metadata_batch_size=2)

        metadata = await enumerator.get_metadata_batch([f"v{i}" for i in range(5)])

        assert provider.video_calls == [["v0", "v1"], ["v2", "v3"], ["v4"]]
        assert len(metadata) == 5
        assert metadata["v0"].duration == "PT30S"

    def test_enrich_copies_details(self) -> None:
        video = make_video("v1", "Original title")
        details = {
            "v1": VideoDetails(
                title="Other title",
                description="About compilers",
                duration="PT4M5S",
                thumbnail="https://i.ytimg.com/vi/v1/hq.jpg",
            )
        }

        (enriched,) = CatalogEnumerator.enrich([video], details)

        assert enriched.title == "Original title"
        assert enriched.duration_seconds == 245
        assert enriched.description == "About compilers"
        assert enriched.thumbnail == "https://i.ytimg.com/vi/v1/hq.jpg"
        assert video.duration_seconds == 0

    def test_enrich_keeps_videos_without_details(self) -> None:
        video = make_video("v1")

        assert CatalogEnumerator.enrich([video], {}) == [video]
