"""Shared fixtures for the TuneSync test suite."""

from typing import Any

import pytest

from tunesync.application.cache.artist_cache import ArtistCache
from tunesync.application.cache.upload_check_cache import UploadCheckCache
from tunesync.application.services.artwork_presenter import ArtworkPresenter
from tunesync.application.services.content_hasher import ContentHasher
from tunesync.application.services.presence_resolver import RemotePresenceResolver
from tunesync.application.services.upload_executor import UploadExecutor
from tunesync.application.workers.prefetch_worker import PrefetchScheduler
from tunesync.application.workers.reconciliation_worker import ReconciliationWorker
from tunesync.application.workers.run_control import RunControl
from tests.fakes import (
    SESSION,
    FakeExtractor,
    FakeRemoteClient,
    FakeRepository,
    RecordingSink,
)


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def remote() -> FakeRemoteClient:
    return FakeRemoteClient()


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def control() -> RunControl:
    return RunControl(poll_interval_seconds=0.01)


@pytest.fixture
def upload_check_cache() -> UploadCheckCache:
    return UploadCheckCache()


@pytest.fixture
def artist_cache(remote: FakeRemoteClient, sink: RecordingSink) -> ArtistCache:
    return ArtistCache(remote, sink, SESSION)


@pytest.fixture
def resolver(
    remote: FakeRemoteClient,
    extractor: FakeExtractor,
    upload_check_cache: UploadCheckCache,
) -> RemotePresenceResolver:
    return RemotePresenceResolver(remote, extractor, upload_check_cache, SESSION)


@pytest.fixture
def executor(
    remote: FakeRemoteClient,
    extractor: FakeExtractor,
    resolver: RemotePresenceResolver,
    control: RunControl,
    sink: RecordingSink,
) -> UploadExecutor:
    return UploadExecutor(
        remote,
        extractor,
        resolver,
        control,
        sink,
        SESSION,
        retry_attempts=5,
        retry_delay_seconds=0.01,
    )


@pytest.fixture
async def artwork(extractor: FakeExtractor, sink: RecordingSink) -> Any:
    presenter = ArtworkPresenter(extractor, sink)
    yield presenter
    await presenter.close()


@pytest.fixture
def make_worker(
    repository: FakeRepository,
    resolver: RemotePresenceResolver,
    executor: UploadExecutor,
    extractor: FakeExtractor,
    remote: FakeRemoteClient,
    artist_cache: ArtistCache,
    control: RunControl,
    sink: RecordingSink,
    artwork: ArtworkPresenter,
) -> Any:
    """Factory building a ReconciliationWorker from the shared fakes."""

    def _make(
        prefetch: PrefetchScheduler | None = None, **kwargs: Any
    ) -> ReconciliationWorker:
        kwargs.setdefault("unexpected_retry_delay_seconds", 0.01)
        return ReconciliationWorker(
            repository=repository,
            hasher=ContentHasher(),
            resolver=resolver,
            executor=executor,
            extractor=extractor,
            client=remote,
            artist_cache=artist_cache,
            control=control,
            sink=sink,
            artwork=artwork,
            prefetch=prefetch,
            **kwargs,
        )

    return _make
