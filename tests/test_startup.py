"""Tests for the startup state machine."""
import asyncio

import pytest

from app.errors import EngineError
from app.startup import StartupSequencer, StartupState
from interfaces.download.progress import STAGE_DOWNLOADING, STAGE_LISTING, DownloadProgress

from fakes import FakeDownloader, FakeEngine, FakeHardware, make_catalog, make_model, write_ready_model

SMALL = make_model("small", min_ram=4, size=1)
BIG = make_model("big", min_ram=16, size=4)


def _sequencer(artifacts, selection_store, *, hardware=None, downloader=None, engine=None, **kwargs):
    return StartupSequencer(
        catalog=make_catalog(SMALL, BIG),
        hardware=hardware or FakeHardware(ram_gb=8),
        selection_store=selection_store,
        artifacts=artifacts,
        downloader=downloader or FakeDownloader(artifacts),
        engine=engine or FakeEngine(),
        **kwargs,
    )


def _record(sequencer):
    seen = []
    sequencer.status.subscribe(seen.append)
    return seen


@pytest.mark.asyncio
async def test_first_run_selects_downloads_loads_and_warms_up(artifacts, selection_store, engine):
    downloader = FakeDownloader(artifacts)
    seq = _sequencer(artifacts, selection_store, downloader=downloader, engine=engine)
    seen = _record(seq)

    result = await seq.run()

    assert result.state is StartupState.READY
    assert result.model == SMALL
    assert selection_store.try_load() == ("small", True)
    assert downloader.calls == ["small"]
    assert engine.loaded_from == artifacts.model_folder("small")
    assert engine.warmed
    assert seq.status.value.chat_ready is True

    states = [s.state for s in seen]
    expected = [
        StartupState.SELECTING_MODEL,
        StartupState.AWAITING_DOWNLOAD_CONSENT,
        StartupState.DOWNLOADING,
        StartupState.LOADING_ENGINE,
        StartupState.WARMING_UP,
        StartupState.READY,
    ]
    assert list(dict.fromkeys(states)) == expected


@pytest.mark.asyncio
async def test_persisted_complete_selection_skips_detection_and_download(artifacts, selection_store):
    write_ready_model(artifacts, "big")
    selection_store.save("big")
    hardware = FakeHardware(ram_gb=8)
    downloader = FakeDownloader(artifacts)
    asked = []

    async def consent(model):
        asked.append(model.id)
        return True

    seq = _sequencer(artifacts, selection_store, hardware=hardware, downloader=downloader, consent=consent)
    result = await seq.run()

    assert result.state is StartupState.READY
    assert result.model == BIG
    assert hardware.calls == 0
    assert downloader.calls == []
    assert asked == []


@pytest.mark.asyncio
async def test_stale_persisted_selection_is_cleared_and_detection_runs(artifacts, selection_store):
    selection_store.save("big")  # folder was deleted since
    hardware = FakeHardware(ram_gb=8)

    seq = _sequencer(artifacts, selection_store, hardware=hardware)
    result = await seq.run()

    assert hardware.calls == 1
    assert result.model == SMALL
    assert selection_store.try_load() == ("small", True)


@pytest.mark.asyncio
async def test_persisted_id_missing_from_catalog_is_cleared(artifacts, selection_store):
    selection_store.save("retired")
    hardware = FakeHardware(ram_gb=32)

    result = await _sequencer(artifacts, selection_store, hardware=hardware).run()

    assert hardware.calls == 1
    assert result.model == BIG
    assert selection_store.try_load() == ("big", True)


@pytest.mark.asyncio
async def test_forced_model_overrides_persisted_selection(artifacts, selection_store):
    write_ready_model(artifacts, "small")
    selection_store.save("small")

    seq = _sequencer(artifacts, selection_store, hardware=FakeHardware(ram_gb=2), forced_model_id="big")
    result = await seq.run()

    assert result.model == BIG
    assert selection_store.try_load() == ("big", True)


@pytest.mark.asyncio
async def test_no_fitting_model(artifacts, selection_store, engine):
    seq = _sequencer(artifacts, selection_store, hardware=FakeHardware(ram_gb=2), engine=engine)
    result = await seq.run()

    assert result.state is StartupState.NO_MODEL
    assert result.model is None
    assert selection_store.try_load() == (None, False)
    assert engine.loaded_from is None


@pytest.mark.asyncio
async def test_download_failure_clears_selection(artifacts, selection_store, engine):
    seq = _sequencer(artifacts, selection_store, downloader=FakeDownloader(artifacts, ok=False), engine=engine)
    result = await seq.run()

    assert result.state is StartupState.FAILED
    assert "failed" in result.message.lower()
    assert selection_store.try_load() == (None, False)
    assert engine.loaded_from is None
    assert seq.status.value.chat_ready is False


@pytest.mark.asyncio
async def test_declined_consent_cancels_without_downloading(artifacts, selection_store):
    downloader = FakeDownloader(artifacts)

    async def decline(model):
        return False

    seq = _sequencer(artifacts, selection_store, downloader=downloader, consent=decline)
    result = await seq.run()

    assert result.state is StartupState.CANCELLED
    assert downloader.calls == []
    assert selection_store.try_load() == (None, False)


@pytest.mark.asyncio
async def test_cancel_during_download(artifacts, selection_store):
    holder = {}
    downloader = FakeDownloader(artifacts, during=lambda: holder["seq"].cancel())
    seq = _sequencer(artifacts, selection_store, downloader=downloader)
    holder["seq"] = seq

    result = await seq.run()

    assert result.state is StartupState.CANCELLED
    assert selection_store.try_load() == (None, False)
    assert not artifacts.is_complete("small")


@pytest.mark.asyncio
async def test_cancel_during_load_keeps_complete_download(artifacts, selection_store):
    write_ready_model(artifacts, "small")
    engine = FakeEngine()
    seq = _sequencer(artifacts, selection_store, engine=engine)
    engine.on_load = seq.cancel

    result = await seq.run()

    assert result.state is StartupState.CANCELLED
    assert selection_store.try_load() == (None, False)
    assert engine.unload_calls == 1
    assert artifacts.is_ready_for_inference("small")


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", ["load", "warmup"])
async def test_engine_failure_removes_artifacts(artifacts, selection_store, failure):
    write_ready_model(artifacts, "small")
    selection_store.save("small")
    error = EngineError("bad weights")
    engine = FakeEngine(
        fail_load=error if failure == "load" else None,
        fail_warmup=error if failure == "warmup" else None,
    )

    result = await _sequencer(artifacts, selection_store, engine=engine).run()

    assert result.state is StartupState.FAILED
    assert result.message == "bad weights"
    assert selection_store.try_load() == (None, False)
    assert not artifacts.model_folder("small").exists()
    assert engine.unload_calls == 1


@pytest.mark.asyncio
async def test_progress_percentage(artifacts, selection_store):
    events = [
        DownloadProgress(stage=STAGE_LISTING),
        DownloadProgress(
            stage=STAGE_DOWNLOADING, current_file="a.onnx",
            total_bytes_downloaded=25, total_bytes_to_download=100,
        ),
        DownloadProgress(
            stage=STAGE_DOWNLOADING, current_file="a.onnx",
            total_bytes_downloaded=250, total_bytes_to_download=100,
        ),
        DownloadProgress(stage=STAGE_DOWNLOADING, current_file="b.onnx", total_bytes_downloaded=5),
    ]
    seq = _sequencer(artifacts, selection_store, downloader=FakeDownloader(artifacts, progress=events))
    seen = _record(seq)
    await seq.run()

    downloading = [s for s in seen if s.state is StartupState.DOWNLOADING]
    determinate = [s.progress_percent for s in downloading if not s.is_indeterminate]
    assert determinate == [25.0, 100.0]
    assert downloading[-1].is_indeterminate is True
    assert downloading[-1].current_file == "b.onnx"


@pytest.mark.asyncio
async def test_run_only_once(artifacts, selection_store):
    seq = _sequencer(artifacts, selection_store)
    await seq.run()
    with pytest.raises(RuntimeError):
        await seq.run()


@pytest.mark.asyncio
async def test_cancel_after_ready_is_ignored(artifacts, selection_store):
    seq = _sequencer(artifacts, selection_store)
    await seq.run()
    seq.cancel()
    assert seq.state is StartupState.READY


@pytest.mark.asyncio
async def test_cancel_while_waiting_for_consent(artifacts, selection_store):
    never_answered = asyncio.Event()
    downloader = FakeDownloader(artifacts)

    async def consent(model):
        await never_answered.wait()
        return True

    seq = _sequencer(artifacts, selection_store, downloader=downloader, consent=consent)
    task = asyncio.create_task(seq.run())
    for _ in range(100):
        if seq.state is StartupState.AWAITING_DOWNLOAD_CONSENT:
            break
        await asyncio.sleep(0)
    assert seq.state is StartupState.AWAITING_DOWNLOAD_CONSENT

    seq.cancel()
    done, _ = await asyncio.wait({task}, timeout=1.0)

    assert task in done
    assert task.result().state is StartupState.CANCELLED
    assert downloader.calls == []
    assert selection_store.try_load() == (None, False)


@pytest.mark.asyncio
async def test_consent_callback_error_fails_startup(artifacts, selection_store):
    async def consent(model):
        raise RuntimeError("prompt unavailable")

    result = await _sequencer(artifacts, selection_store, consent=consent).run()

    assert result.state is StartupState.FAILED
    assert result.message == "prompt unavailable"


@pytest.mark.asyncio
async def test_cancel_before_run_clears_selection(artifacts, selection_store):
    selection_store.save("small")
    hardware = FakeHardware(ram_gb=8)
    seq = _sequencer(artifacts, selection_store, hardware=hardware)

    seq.cancel()
    result = await seq.run()

    assert result.state is StartupState.CANCELLED
    assert result.model is None
    assert hardware.calls == 0
    assert selection_store.try_load() == (None, False)
