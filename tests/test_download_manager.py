import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from hifi_cli.core.download_manager import (
    PHASE_CONVERTING,
    DownloadManager,
    is_compressed_source,
)
from hifi_cli.core.queue import DownloadQueue
from hifi_cli.exceptions import (
    ConversionFailure,
    DownloadCancelledError,
    DownloadInProgressError,
    FilesystemFailure,
    NetworkFailure,
)
from hifi_cli.models.job import JobStatus
from hifi_cli.models.quality import AudioFormat

PAYLOAD = b"fLaC" + bytes(range(256)) * 40


class FakeTranscoder:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def transcode(self, input_path, output_path):
        self.calls.append((input_path, output_path))
        if self.fail:
            raise ConversionFailure("ffmpeg exited with code 1: Invalid data")
        output_path.write_bytes(b"ID3" + input_path.read_bytes()[:16])
        input_path.unlink()
        return output_path


def make_app(release: asyncio.Event = None):
    async def flac(request):
        return web.Response(body=PAYLOAD, content_type="audio/flac")

    async def broken(request):
        return web.Response(status=500)

    async def truncated(request):
        response = web.StreamResponse(headers={"Content-Length": str(len(PAYLOAD) * 2)})
        await response.prepare(request)
        await response.write(PAYLOAD)
        request.transport.close()
        return response

    async def stalled(request):
        response = web.StreamResponse(headers={"Content-Length": str(len(PAYLOAD) * 10)})
        await response.prepare(request)
        await response.write(PAYLOAD)
        try:
            await asyncio.wait_for(release.wait(), 5)
        except asyncio.TimeoutError:
            pass
        return response

    app = web.Application()
    app.router.add_get("/a.flac", flac)
    app.router.add_get("/a.mp3", flac)
    app.router.add_get("/broken.flac", broken)
    app.router.add_get("/truncated.flac", truncated)
    app.router.add_get("/stalled.flac", stalled)
    return app


def run_with_server(scenario, release=None):
    async def main():
        async with TestServer(make_app(release)) as server:
            return await scenario(lambda path: str(server.make_url(path)))

    return asyncio.run(main())


def test_is_compressed_source():
    assert is_compressed_source("https://cdn.test/x/track.MP3?sig=1")
    assert is_compressed_source("https://cdn.test/x/trackmp3")
    assert not is_compressed_source("https://cdn.test/x/track.flac")


def test_lossless_download_keeps_requested_name(config, tmp_path):
    events = []

    async def scenario(url):
        async with DownloadManager(config, on_progress=events.append) as manager:
            result = await manager.start_download(
                url("/a.flac"), tmp_path, "Artist - Song.flac", AudioFormat.FLAC
            )
            assert not manager.is_active("Artist - Song.flac")
            return result

    result = run_with_server(scenario)
    assert result.final_filename == "Artist - Song.flac"
    assert result.final_path.read_bytes() == PAYLOAD
    assert [e.percentage for e in events][-1] == 100
    percentages = [e.percentage for e in events]
    assert percentages == sorted(percentages)
    assert len(percentages) == len(set(percentages))
    assert {e.filename_key for e in events} == {"Artist - Song.flac"}


def test_compressed_request_for_lossless_source_converts(config, tmp_path):
    transcoder = FakeTranscoder()
    events = []

    async def scenario(url):
        async with DownloadManager(
            config, on_progress=events.append, transcoder=transcoder
        ) as manager:
            return await manager.start_download(
                url("/a.flac"), tmp_path, "Artist - Song.mp3", AudioFormat.MP3
            )

    result = run_with_server(scenario)
    assert result.final_filename == "Artist - Song.mp3"
    assert result.final_path.exists()
    assert not (tmp_path / "Artist - Song.flac").exists()
    assert transcoder.calls == [
        (tmp_path / "Artist - Song.flac", tmp_path / "Artist - Song.mp3")
    ]
    assert events[-1].phase == PHASE_CONVERTING
    assert events[-1].percentage == 0


def test_compressed_source_is_renamed_not_converted(config, tmp_path):
    transcoder = FakeTranscoder()

    async def scenario(url):
        async with DownloadManager(config, transcoder=transcoder) as manager:
            return await manager.start_download(
                url("/a.mp3"), tmp_path, "Artist - Song.mp3", AudioFormat.MP3
            )

    result = run_with_server(scenario)
    assert transcoder.calls == []
    assert result.final_path == tmp_path / "Artist - Song.mp3"
    assert result.final_path.read_bytes() == PAYLOAD
    assert sorted(p.name for p in tmp_path.iterdir()) == ["Artist - Song.mp3"]


def test_sequential_downloads_get_collision_suffix(config, tmp_path):
    async def scenario(url):
        async with DownloadManager(config) as manager:
            first = await manager.start_download(
                url("/a.flac"), tmp_path, "X.flac", AudioFormat.FLAC
            )
            second = await manager.start_download(
                url("/a.flac"), tmp_path, "X.flac", AudioFormat.FLAC
            )
            return first, second

    first, second = run_with_server(scenario)
    assert first.final_filename == "X.flac"
    assert second.final_filename == "X - 2.flac"
    assert (tmp_path / "X.flac").exists()
    assert (tmp_path / "X - 2.flac").exists()


def test_sequential_converted_downloads_get_collision_suffix(config, tmp_path):
    async def scenario(url):
        async with DownloadManager(config, transcoder=FakeTranscoder()) as manager:
            names = []
            for _ in range(2):
                result = await manager.start_download(
                    url("/a.flac"), tmp_path, "X.mp3", AudioFormat.MP3
                )
                names.append(result.final_filename)
            return names

    assert run_with_server(scenario) == ["X.mp3", "X - 2.mp3"]


def test_destination_directory_is_created(config, tmp_path):
    target = tmp_path / "nested" / "dir"

    async def scenario(url):
        async with DownloadManager(config) as manager:
            return await manager.start_download(
                url("/a.flac"), target, "X.flac", AudioFormat.FLAC
            )

    assert run_with_server(scenario).final_path == target / "X.flac"


def test_http_error_raises_network_failure(config, tmp_path):
    async def scenario(url):
        async with DownloadManager(config) as manager:
            with pytest.raises(NetworkFailure):
                await manager.start_download(
                    url("/broken.flac"), tmp_path, "X.flac", AudioFormat.FLAC
                )
            assert manager.active_keys == []

    run_with_server(scenario)


def test_interrupted_transfer_leaves_partial_file(config, tmp_path):
    async def scenario(url):
        async with DownloadManager(config) as manager:
            with pytest.raises(NetworkFailure):
                await manager.start_download(
                    url("/truncated.flac"), tmp_path, "X.flac", AudioFormat.FLAC
                )

    run_with_server(scenario)
    assert (tmp_path / "X.flac").exists()


def test_conversion_failure_preserves_lossless_file(config, tmp_path):
    async def scenario(url):
        async with DownloadManager(config, transcoder=FakeTranscoder(fail=True)) as manager:
            with pytest.raises(ConversionFailure):
                await manager.start_download(
                    url("/a.flac"), tmp_path, "X.mp3", AudioFormat.MP3
                )

    run_with_server(scenario)
    assert (tmp_path / "X.flac").read_bytes() == PAYLOAD
    assert not (tmp_path / "X.mp3").exists()


def test_cancel_aborts_transfer_and_removes_partial(config, tmp_path):
    release = asyncio.Event()

    async def scenario(url):
        started = asyncio.Event()

        def on_progress(event):
            started.set()

        async with DownloadManager(config, on_progress=on_progress) as manager:
            task = asyncio.create_task(
                manager.start_download(
                    url("/stalled.flac"), tmp_path, "X.flac", AudioFormat.FLAC
                )
            )
            await asyncio.wait_for(started.wait(), 5)

            with pytest.raises(DownloadInProgressError):
                await manager.start_download(
                    url("/a.flac"), tmp_path, "X.flac", AudioFormat.FLAC
                )

            assert await manager.cancel("X.flac")
            with pytest.raises(DownloadCancelledError):
                await task
            assert not manager.is_active("X.flac")
            assert not await manager.cancel("X.flac")
            release.set()

    run_with_server(scenario, release)
    assert list(tmp_path.iterdir()) == []


def test_cancel_for_other_directory_does_nothing(config, tmp_path):
    release = asyncio.Event()

    async def scenario(url):
        started = asyncio.Event()
        async with DownloadManager(config, on_progress=lambda e: started.set()) as manager:
            task = asyncio.create_task(
                manager.start_download(
                    url("/stalled.flac"), tmp_path, "X.flac", AudioFormat.FLAC
                )
            )
            await asyncio.wait_for(started.wait(), 5)
            assert not await manager.cancel("X.flac", tmp_path / "elsewhere")
            assert manager.is_active("X.flac")
            assert await manager.cancel("X.flac", tmp_path)
            release.set()
            with pytest.raises(DownloadCancelledError):
                await task

    run_with_server(scenario, release)


def test_cancel_unknown_key_is_harmless(config):
    async def scenario():
        async with DownloadManager(config) as manager:
            return await manager.cancel("nothing.flac")

    assert asyncio.run(scenario()) is False


def test_destination_under_a_regular_file_is_a_filesystem_failure(config, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"not a folder")
    dest = blocker / "sub"

    async def scenario(url):
        async with DownloadManager(config) as manager:
            assert not manager.ensure_directory(dest)
            with pytest.raises(FilesystemFailure):
                await manager.start_download(
                    url("/a.flac"), dest, "Artist - Song.flac", AudioFormat.FLAC
                )
            assert not manager.is_active("Artist - Song.flac")

    run_with_server(scenario)
    assert blocker.read_bytes() == b"not a folder"


def test_queue_job_errors_when_destination_cannot_be_created(
    config, tmp_path, make_track, catalog_factory
):
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"")

    async def scenario(url):
        async with DownloadManager(config) as manager:
            queue = DownloadQueue(config, manager, catalog_factory())
            failed, saved = await asyncio.gather(
                queue.download(make_track(), url=url("/a.flac"), dest_dir=blocker / "sub"),
                queue.download(make_track(track_id=2, title="Other"), url=url("/a.flac")),
            )
            return queue, failed, saved

    queue, failed, saved = run_with_server(scenario)
    assert failed.status is JobStatus.ERROR
    assert "Artist - Song.flac" in failed.error
    assert saved.status is JobStatus.COMPLETED
    assert queue.active == []
