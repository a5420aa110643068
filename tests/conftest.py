"""Shared pytest fixtures. Test doubles live in doubles.py."""
import random

import pytest

from chronowave import errors
from chronowave.catalog import BlobRegistry, CatalogStore, DirectoryBackend
from chronowave.tracks import TrackRegistry

from doubles import EPOCH_MS, FakeAudio, FrozenClock


@pytest.fixture(autouse=True)
def errors_log(tmp_path, monkeypatch):
    """Keep format_error() output inside the test's tmp dir."""
    out = tmp_path / "output"
    monkeypatch.setattr(errors, "OUTPUT_DIR", out)
    monkeypatch.setattr(errors, "ERRORS_LOG", out / "errors.log")
    return out / "errors.log"


@pytest.fixture
def clock():
    # 100s on air
    return FrozenClock(EPOCH_MS, now=EPOCH_MS + 100_000)


@pytest.fixture
def audio():
    return FakeAudio()


@pytest.fixture
def blobs():
    return BlobRegistry()


@pytest.fixture
def backend(tmp_path):
    return DirectoryBackend(tmp_path / "catalog", max_mb=16, min_free_mb=0)


@pytest.fixture
def store(backend):
    return CatalogStore(backend)


@pytest.fixture
def registry(store):
    return TrackRegistry(store, rng=random.Random(7))


@pytest.fixture
def broken_store(tmp_path):
    """A store whose catalog path is a plain file, so opening it always fails."""
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    return CatalogStore(DirectoryBackend(blocker, max_mb=16, min_free_mb=0))
