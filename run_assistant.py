from __future__ import annotations

from typing import Optional
import asyncio
import logging
import signal
import sys
import threading

from app.container import build_container
from app.errors import CatalogError
from app.logging_setup import configure_logging
from app.settings import build_settings
from app.startup import StartupState, StartupStatus
from interfaces.model.descriptor import ModelDescriptor
from services.chat_service import ROLE_ASSISTANT, ChatMessage

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NO_MODEL = 2

_QUIT_COMMANDS = {"/exit", "/quit"}


class StatusPrinter:
    """Prints startup status to the console, one line per state or whole-percent change."""

    def __init__(self) -> None:
        self._last: Optional[tuple] = None

    def __call__(self, status: StartupStatus) -> None:
        percent = None if status.is_indeterminate else int(status.progress_percent)
        key = (status.state, percent, status.current_file)
        if key == self._last:
            return
        self._last = key
        if percent is None:
            print(f"[{status.state.value}] {status.message}", flush=True)
        else:
            print(f"[{status.state.value}] {percent:3d}% {status.message}", flush=True)


class ReplyPrinter:
    """Streams the growing assistant message of the current turn to stdout."""

    def __init__(self) -> None:
        self._printed = 0

    def reset(self) -> None:
        self._printed = 0

    def __call__(self, messages: tuple[ChatMessage, ...]) -> None:
        if not messages or messages[-1].role != ROLE_ASSISTANT:
            return
        content = messages[-1].content
        if len(content) > self._printed:
            print(content[self._printed:], end="", flush=True)
            self._printed = len(content)


async def read_line(prompt: str) -> str:
    """input() on a daemon thread, so an abandoned prompt never holds up shutdown."""
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str] = loop.create_future()

    def _deliver(setter, value) -> None:
        if not future.done():
            setter(value)

    def _worker() -> None:
        try:
            outcome = (future.set_result, input(prompt))
        except Exception as exc:
            outcome = (future.set_exception, exc)
        try:
            loop.call_soon_threadsafe(_deliver, *outcome)
        except RuntimeError:
            # Loop already closed; nobody is waiting for this line
            return

    threading.Thread(target=_worker, name="console-input", daemon=True).start()
    return await future


async def ask_download_consent(model: ModelDescriptor) -> bool:
    prompt = f"Download {model.name} (about {model.size_gb:g} GB) now? [y/N] "
    answer = await read_line(prompt)
    return answer.strip().lower() in {"y", "yes"}


def _install_interrupt_handler(loop: asyncio.AbstractEventLoop, on_interrupt) -> bool:
    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
        return True
    except (NotImplementedError, RuntimeError):
        # e.g. Windows event loops; Ctrl+C then raises KeyboardInterrupt instead
        return False


async def chat_loop(chat) -> None:
    printer = ReplyPrinter()
    unsubscribe = chat.transcript.subscribe(printer)
    print("Type a message, or /exit to quit. Ctrl+C stops the current reply.", flush=True)
    try:
        while True:
            try:
                line = await read_line("\n> ")
            except EOFError:
                break
            text = line.strip()
            if not text:
                continue
            if text.lower() in _QUIT_COMMANDS:
                break
            printer.reset()
            await chat.send(text)
            print(flush=True)
    finally:
        unsubscribe()


async def run(deps) -> int:
    sequencer = deps["startup"]
    chat = deps["chat"]

    def _on_interrupt() -> None:
        if not sequencer.state.is_terminal:
            sequencer.cancel()
        else:
            chat.cancel()

    _install_interrupt_handler(asyncio.get_running_loop(), _on_interrupt)
    deps["status"].subscribe(StatusPrinter())

    try:
        result = await sequencer.run()
        if result.state is StartupState.NO_MODEL:
            print(result.message, file=sys.stderr)
            return EXIT_NO_MODEL
        if result.state is not StartupState.READY:
            print(result.message, file=sys.stderr)
            return EXIT_FAILED

        await chat_loop(chat)
        return EXIT_OK
    finally:
        deps["engine"].unload()
        await deps["remote"].aclose()


def main() -> int:
    # Build config (paths/artifacts/download/engine)
    app_cfg = build_settings()
    listener = configure_logging(app_cfg.paths.log_file, level=logging.getLevelName(app_cfg.log_level))
    logger.info("App data directory: %s", app_cfg.paths.app_base_dir)

    try:
        try:
            deps = build_container(app_cfg, consent=ask_download_consent)
        except CatalogError as exc:
            logger.error("Model catalog could not be loaded: %s", exc)
            print(f"Model catalog could not be loaded: {exc}", file=sys.stderr)
            return EXIT_FAILED

        try:
            return asyncio.run(run(deps))
        except KeyboardInterrupt:
            logger.info("Interrupted")
            return EXIT_FAILED
    finally:
        logger.info("Shutting down")
        listener.stop()


if __name__ == "__main__":
    sys.exit(main())
