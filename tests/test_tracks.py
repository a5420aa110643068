import asyncio
import random

import pytest

from chronowave.catalog import Origin
from chronowave.config import DEFAULT_STATIONS, LOCAL_SEED_RANGE, NAME_MAX_LEN
from chronowave.errors import InvalidInput, StorageError
from chronowave.tracks import TrackRegistry, normalize_name, suggest_name


def test_normalize_name():
    assert normalize_name("demo tape!") == "DEMO_TAPE_"
    assert normalize_name("Late-Night 85") == "LATE_NIGHT_85"
    assert len(normalize_name("x" * 60)) == NAME_MAX_LEN


def test_suggest_name_from_filename():
    assert suggest_name("my song.final.mp3") == "MY_SONG_FINAL"
    assert suggest_name("a" * 40 + ".ogg") == "A" * 20


def test_empty_catalog_plays_house_stations(registry, blobs):
    tracks = asyncio.run(registry.list_tracks(blobs.scope().mint))
    assert [t.name for t in tracks] == [s["name"] for s in DEFAULT_STATIONS]
    assert all(t.origin is Origin.REMOTE for t in tracks)
    assert [t.playback_ref for t in tracks] == [s["address"] for s in DEFAULT_STATIONS]
    assert all(0 <= t.offset_seed < 3600 for t in tracks)
    assert registry.is_default(tracks)


def test_default_seeds_fixed_for_the_process(registry, blobs):
    first = asyncio.run(registry.list_tracks(blobs.scope().mint))
    second = asyncio.run(registry.list_tracks(blobs.scope().mint))
    assert [t.offset_seed for t in first] == [t.offset_seed for t in second]


def test_default_seeds_reroll_per_process(store):
    a = TrackRegistry(store, rng=random.Random(1)).default_tracks()
    b = TrackRegistry(store, rng=random.Random(2)).default_tracks()
    assert [t.offset_seed for t in a] != [t.offset_seed for t in b]


def test_add_track_is_visible_on_next_read(registry, blobs):
    async def scenario():
        after_add = await registry.add_track("demo tape!", b"\xff\xfbfake", blobs.scope().mint)
        listed = await registry.list_tracks(blobs.scope().mint)
        return after_add, listed

    after_add, listed = asyncio.run(scenario())
    assert len(after_add) == 1
    track = after_add[0]
    assert track.origin is Origin.LOCAL
    assert track.name == "DEMO_TAPE_"
    assert track.payload == b"\xff\xfbfake"
    assert 0 <= track.offset_seed < LOCAL_SEED_RANGE
    assert not registry.is_default(after_add)

    assert [t.id for t in listed] == [track.id]
    assert listed[0].offset_seed == track.offset_seed
    assert listed[0].playback_ref != track.playback_ref


def test_added_ids_are_unique(registry, blobs):
    async def scenario():
        mint = blobs.scope().mint
        await registry.add_track("one", b"1", mint)
        return await registry.add_track("two", b"2", mint)

    tracks = asyncio.run(scenario())
    assert len({t.id for t in tracks}) == 2


@pytest.mark.parametrize("name, data, mime", [
    ("", b"audio", "audio/mpeg"),
    ("   ", b"audio", "audio/mpeg"),
    ("TAPE", b"", "audio/mpeg"),
    ("TAPE", None, "audio/mpeg"),
    ("TAPE", b"audio", "video/mp4"),
])
def test_invalid_upload_never_reaches_storage(registry, backend, blobs, name, data, mime):
    with pytest.raises(InvalidInput):
        asyncio.run(registry.add_track(name, data, blobs.scope().mint, mime_type=mime))
    assert not backend.path.exists() or not list(backend.path.glob("*.json"))


def test_mime_parameters_are_ignored(registry, blobs):
    tracks = asyncio.run(
        registry.add_track("tape", b"ogg", blobs.scope().mint, mime_type="Audio/OGG; codecs=vorbis")
    )
    assert tracks[0].mime_type == "audio/ogg"


def test_read_failure_falls_back_to_defaults(broken_store, blobs, errors_log):
    registry = TrackRegistry(broken_store)
    tracks = asyncio.run(registry.list_tracks(blobs.scope().mint))
    assert [t.name for t in tracks] == [s["name"] for s in DEFAULT_STATIONS]
    assert '"stage": "catalog_read"' in errors_log.read_text()


def test_write_failure_propagates(broken_store, blobs):
    registry = TrackRegistry(broken_store)
    with pytest.raises(StorageError):
        asyncio.run(registry.add_track("tape", b"data", blobs.scope().mint))
    with pytest.raises(StorageError):
        asyncio.run(registry.remove_track("anything", blobs.scope().mint))


def test_remove_then_list(registry, blobs):
    async def scenario():
        mint = blobs.scope().mint
        await registry.add_track("keep", b"k", mint)
        tracks = await registry.add_track("drop", b"d", mint)
        drop_id = next(t.id for t in tracks if t.name == "DROP")
        return drop_id, await registry.remove_track(drop_id, mint)

    drop_id, tracks = asyncio.run(scenario())
    assert drop_id not in [t.id for t in tracks]
    assert [t.name for t in tracks] == ["KEEP"]


def test_remove_unknown_id_leaves_list_unchanged(registry, blobs):
    async def scenario():
        mint = blobs.scope().mint
        before = await registry.add_track("keep", b"k", mint)
        after = await registry.remove_track("no-such-id", mint)
        return before, after

    before, after = asyncio.run(scenario())
    assert [t.id for t in after] == [t.id for t in before]


def test_removing_last_upload_brings_back_defaults(registry, blobs):
    async def scenario():
        mint = blobs.scope().mint
        [track] = await registry.add_track("solo", b"s", mint)
        return await registry.remove_track(track.id, mint)

    assert registry.is_default(asyncio.run(scenario()))
