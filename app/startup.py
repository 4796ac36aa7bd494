"""
Startup state machine.

    IDLE -> SELECTING_MODEL -> AWAITING_DOWNLOAD_CONSENT -> DOWNLOADING
         -> LOADING_ENGINE -> WARMING_UP -> READY

NO_MODEL, CANCELLED and FAILED are terminal and can be reached from any
non-terminal state (NO_MODEL only from SELECTING_MODEL). Consent and download
are skipped when the chosen model is already ready for inference.

Every abort clears the persisted selection so the next launch starts fresh,
and removes what was left on disk for the model:
- download failure or any cancellation: incomplete artifacts only
- engine load / warm-up failure: the whole model folder
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional
import asyncio
import logging

from app.cancellation import CancellationToken, OperationCancelledError
from app.errors import DownloadError
from app.model_selection import capabilities_from_hardware, select_model
from app.observable import ObservableState
from config.model_catalog import ModelCatalog
from interfaces.download.progress import STAGE_LISTING, DownloadProgress
from interfaces.engine.inference import InferenceEngine
from interfaces.hardware.provider import HardwareInfoProvider
from interfaces.model.descriptor import ModelDescriptor
from interfaces.state.selection_store import SelectionStateStore
from services.artifact_store import ArtifactStore
from services.download_service import DownloadOrchestrator

logger = logging.getLogger(__name__)


class StartupState(str, Enum):
    IDLE = "Idle"
    SELECTING_MODEL = "SelectingModel"
    NO_MODEL = "NoModel"
    AWAITING_DOWNLOAD_CONSENT = "AwaitingDownloadConsent"
    DOWNLOADING = "Downloading"
    LOADING_ENGINE = "LoadingEngine"
    WARMING_UP = "WarmingUp"
    READY = "Ready"
    CANCELLED = "Cancelled"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = {StartupState.NO_MODEL, StartupState.READY, StartupState.CANCELLED, StartupState.FAILED}
_ENGINE_STAGES = {StartupState.LOADING_ENGINE, StartupState.WARMING_UP}
_CANCEL_POLL_S = 0.05


@dataclass(frozen=True, slots=True)
class StartupStatus:
    """Snapshot published to observers on every startup change."""
    state: StartupState = StartupState.IDLE
    message: str = ""
    model_name: Optional[str] = None
    progress_percent: float = 0.0
    is_indeterminate: bool = True
    current_file: Optional[str] = None
    chat_ready: bool = False


@dataclass(frozen=True, slots=True)
class StartupResult:
    state: StartupState
    model: Optional[ModelDescriptor]
    message: str


# Asked before any byte is downloaded; False declines the download
ConsentCallback = Callable[[ModelDescriptor], Awaitable[bool]]


class StartupSequencer:
    def __init__(
        self,
        catalog: ModelCatalog,
        hardware: HardwareInfoProvider,
        selection_store: SelectionStateStore,
        artifacts: ArtifactStore,
        downloader: DownloadOrchestrator,
        engine: InferenceEngine,
        status: Optional[ObservableState[StartupStatus]] = None,
        consent: Optional[ConsentCallback] = None,
        forced_model_id: Optional[str] = None,
    ) -> None:
        self.catalog = catalog
        self.hardware = hardware
        self.selection_store = selection_store
        self.artifacts = artifacts
        self.downloader = downloader
        self.engine = engine
        self.status = status if status is not None else ObservableState(StartupStatus())
        self.consent = consent
        self.forced_model_id = forced_model_id

        self._token = CancellationToken()
        self._stage = StartupState.IDLE
        self._started = False

    @property
    def state(self) -> StartupState:
        return self.status.value.state

    def cancel(self) -> None:
        """Request cancellation of whichever step is active. No effect once a terminal state is reached."""
        if self.state.is_terminal:
            return
        logger.info("Startup cancellation requested during %s", self._stage.value)
        self._token.cancel()

    # ---------- Status ----------

    def _publish(self, state: StartupState, message: str, **changes) -> None:
        self._stage = state
        self.status.update(state=state, message=message, **changes)
        logger.info("Startup state %s: %s", state.value, message)

    def _finish(self, state: StartupState, model: Optional[ModelDescriptor], message: str) -> StartupResult:
        self._publish(state, message, chat_ready=state is StartupState.READY)
        return StartupResult(state=state, model=model, message=message)

    def _on_progress(self, progress: DownloadProgress) -> None:
        if progress.stage == STAGE_LISTING:
            self.status.update(message="Listing model files...", is_indeterminate=True, current_file=None)
            return

        fraction = progress.overall_fraction()
        if fraction is None:
            self.status.update(
                message=f"Downloading {progress.current_file}",
                is_indeterminate=True,
                current_file=progress.current_file,
            )
            return

        percent = min(100.0, max(0.0, fraction * 100.0))
        self.status.update(
            message=f"Downloading {progress.current_file} ({percent:.0f}%)",
            is_indeterminate=False,
            progress_percent=percent,
            current_file=progress.current_file,
        )

    # ---------- Steps ----------

    def _restore_selection(self) -> Optional[ModelDescriptor]:
        saved_id, found = self.selection_store.try_load()
        if not found or saved_id is None:
            return None

        model = self.catalog.find(saved_id)
        if model is None:
            logger.warning("Persisted model %s is no longer in the catalog, clearing selection", saved_id)
            self.selection_store.clear()
            return None
        if self.forced_model_id and self.forced_model_id != model.id:
            logger.info("Forced model %s overrides persisted selection %s", self.forced_model_id, model.id)
            return None
        if not self.artifacts.is_complete(model.id):
            logger.warning("Persisted model %s is not on disk, clearing selection", model.id)
            self.selection_store.clear()
            return None

        logger.info("Restored persisted selection %s", model.id)
        return model

    def _select_model(self) -> Optional[ModelDescriptor]:
        restored = self._restore_selection()
        if restored is not None:
            return restored

        info = self.hardware.get_hardware_info()
        model = select_model(capabilities_from_hardware(info), self.catalog.models, self.forced_model_id)
        if model is not None:
            self.selection_store.save(model.id)
            logger.info("Selected model %s for %s", model.id, info.summary)
        return model

    async def _ask_consent(self, model: ModelDescriptor) -> bool:
        if self.consent is None:
            return True
        # The callback has no token; race it against cancellation
        pending = asyncio.ensure_future(self.consent(model))
        try:
            while not pending.done():
                self._token.raise_if_cancelled()
                await asyncio.wait({pending}, timeout=_CANCEL_POLL_S)
        finally:
            if not pending.done():
                pending.cancel()
        return bool(pending.result())

    async def _download(self, model: ModelDescriptor) -> None:
        self._publish(
            StartupState.AWAITING_DOWNLOAD_CONSENT,
            f"{model.name} must be downloaded (about {model.size_gb:g} GB).",
        )
        if not await self._ask_consent(model):
            raise OperationCancelledError("Model download was declined.")
        self._token.raise_if_cancelled()

        self._publish(
            StartupState.DOWNLOADING,
            f"Downloading {model.name}...",
            progress_percent=0.0,
            is_indeterminate=True,
            current_file=None,
        )
        ok = await self.downloader.ensure_downloaded(model, self._on_progress, self._token)
        if not ok:
            self._token.raise_if_cancelled()
            raise DownloadError(f"Download of {model.name} failed. It will be retried on the next launch.")

    async def _load(self, model: ModelDescriptor) -> None:
        self._publish(
            StartupState.LOADING_ENGINE,
            f"Loading {model.name}...",
            is_indeterminate=True,
            current_file=None,
        )
        await self.engine.load_model(self.artifacts.model_folder(model.id), self._token)

        self._publish(StartupState.WARMING_UP, f"Warming up {model.name}...")
        await self.engine.warmup(self._token)
        self._token.raise_if_cancelled()

    def _cleanup_after_abort(self, model: Optional[ModelDescriptor], failed: bool) -> None:
        self.selection_store.clear()
        if model is None:
            return

        engine_stage = self._stage in _ENGINE_STAGES
        if engine_stage:
            self.engine.unload()
        if failed and engine_stage:
            self.artifacts.delete_model(model.id)
        else:
            self.artifacts.cleanup_incomplete(model.id)

    # ---------- Entry point ----------

    async def run(self) -> StartupResult:
        if self._started:
            raise RuntimeError("StartupSequencer.run() may only be called once.")
        self._started = True

        model: Optional[ModelDescriptor] = None
        try:
            self._token.raise_if_cancelled()
            self._publish(StartupState.SELECTING_MODEL, "Selecting a model for this device...")
            model = self._select_model()
            if model is None:
                return self._finish(
                    StartupState.NO_MODEL,
                    None,
                    "No model in the catalog fits this device's memory.",
                )
            self.status.update(model_name=model.name)
            self._token.raise_if_cancelled()

            if not self.artifacts.is_ready_for_inference(model.id):
                await self._download(model)
            else:
                logger.info("Model %s is ready, skipping download", model.id)

            await self._load(model)
        except (OperationCancelledError, asyncio.CancelledError) as exc:
            logger.warning("Startup cancelled during %s", self._stage.value)
            self._cleanup_after_abort(model, failed=False)
            result = self._finish(StartupState.CANCELLED, model, "Startup was cancelled.")
            if isinstance(exc, asyncio.CancelledError):
                raise
            return result
        except Exception as exc:
            logger.exception("Startup failed during %s", self._stage.value)
            self._cleanup_after_abort(model, failed=True)
            return self._finish(StartupState.FAILED, model, str(exc) or type(exc).__name__)

        return self._finish(
            StartupState.READY,
            model,
            f"{model.name} is ready.",
        )
