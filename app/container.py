# Import configuration, catalog and startup orchestration.
from app.observable import ObservableState
from app.startup import ConsentCallback, StartupSequencer, StartupStatus
from config.model_catalog import load_catalog

# Import I/O and service-layer components.
from services.artifact_store import ArtifactStore
from services.chat_service import ChatSession
from services.download_service import DownloadOrchestrator
from services.hardware_service import LocalHardwareInfoProvider
from services.remote_tree import RemoteTreeClient
from services.selection_state import FileSelectionStateStore

# Import the ONNX Runtime GenAI engine adapter
from nlp.engine.genai_engine import GenAiInferenceEngine, shutdown_runtime

# Standard utilities
from typing import Optional
import atexit


def build_container(cfg, consent: Optional[ConsentCallback] = None):
    """
    Dependency container builder
    Responsibility:
     - Takes a fully loaded config object
     - Constructs all shared services exactly once
     - Wires dependencies together
     - Returns a dictionary of ready-to-use services
    """

    # --------- Catalog ----------
    # Fatal on a malformed manifest (CatalogError propagates to the caller)
    catalog = load_catalog()

    # --------- Local state ----------
    hardware = LocalHardwareInfoProvider()
    selection_store = FileSelectionStateStore(cfg.paths.selection_file)
    artifacts = ArtifactStore(cfg.paths.models_root, cfg.artifacts)

    # --------- Download wiring ----------
    remote = RemoteTreeClient(cfg.download)
    downloader = DownloadOrchestrator(remote=remote, artifacts=artifacts)

    # ---------- Inference engine ----------
    engine = GenAiInferenceEngine(cfg.engine)

    # Release the native runtime exactly once on program exit
    atexit.register(shutdown_runtime)

    # ---------- Startup + chat ----------
    status = ObservableState(StartupStatus())
    sequencer = StartupSequencer(
        catalog=catalog,
        hardware=hardware,
        selection_store=selection_store,
        artifacts=artifacts,
        downloader=downloader,
        engine=engine,
        status=status,
        consent=consent,
        forced_model_id=cfg.forced_model_id,
    )
    chat = ChatSession(engine=engine, cfg=cfg.engine)

    # ---- RETURN CONTAINER -----
    # Return all constructed services in a single lookup dictionary
    return {
        "cfg": cfg,
        "catalog": catalog,
        "hardware": hardware,
        "selection": selection_store,
        "artifacts": artifacts,
        "remote": remote,
        "downloader": downloader,
        "engine": engine,
        "status": status,
        "startup": sequencer,
        "chat": chat,
    }
