"""Main application entry point for dictapipe."""

import sys
import json
import signal
import asyncio
import argparse
import logging
from pathlib import Path
from typing import List

from . import __version__
from .audio.capture import AudioCapture
from .config import DictaPipeConfig
from .exceptions import CaptureUnavailable, ConfigError
from .models.session import SessionMode
from .models.transcription import estimated_cost
from .output.sinks import OutputSink, ConsoleSink, JsonLinesSink, FileSink
from .services.pipeline_service import PipelineService, create_backend
from .services.recording_service import RecordingService, RecordingState

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CAPTURE = 1
EXIT_CONFIG = 3
EXIT_TRANSCRIPTION = 4


def setup_logging(config: DictaPipeConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path')
    console_output = config.get('logging.console_output', True)

    handlers = []

    if log_file_path:
        Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file_path)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
        ))
        handlers.append(file_handler)

    # stdout carries transcripts, so the console handler writes to stderr
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info(f"dictapipe {__version__} starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def _install_sigint(loop: asyncio.AbstractEventLoop, handler) -> bool:
    try:
        loop.add_signal_handler(signal.SIGINT, handler)
        return True
    except (NotImplementedError, RuntimeError):
        # Windows event loops: Ctrl+C surfaces as KeyboardInterrupt instead
        return False


def _remove_sigint(loop: asyncio.AbstractEventLoop, installed: bool) -> None:
    if installed:
        loop.remove_signal_handler(signal.SIGINT)


async def run_once(config: DictaPipeConfig, as_json: bool, sinks: List[OutputSink]) -> int:
    """Record one utterance until silence or Ctrl+C, transcribe it and print it."""
    loop = asyncio.get_running_loop()
    backend = create_backend(config)
    capture_errors: List[CaptureUnavailable] = []

    def source_factory(callback):
        return AudioCapture(
            callback=lambda chunk: loop.call_soon_threadsafe(callback, chunk),
            sample_rate=config.get('audio.sample_rate'),
            chunk_size=config.get('audio.chunk_size'),
            channels=config.get('audio.channels'),
            on_error=lambda error: loop.call_soon_threadsafe(on_capture_error, error),
        )

    service = RecordingService(
        backend,
        settings=config.segmentation_settings(),
        options=config.transcription_options(),
        timeout=config.get_transcription_timeout(),
        source_factory=source_factory,
    )

    def on_capture_error(error: CaptureUnavailable) -> None:
        capture_errors.append(error)
        service.cancel_recording()

    aborts: List[asyncio.Task] = []

    def on_sigint() -> None:
        if service.state is RecordingState.RECORDING:
            service.stop_recording()
        elif service.state is RecordingState.TRANSCRIBING:
            aborts.append(loop.create_task(service.abort_transcription()))

    try:
        service.start_recording()
    except CaptureUnavailable as e:
        sys.stderr.write(f"{e}\n")
        return EXIT_CAPTURE

    installed = _install_sigint(loop, on_sigint)
    try:
        while service.state is RecordingState.RECORDING:
            await asyncio.sleep(0.05)
        if capture_errors:
            sys.stderr.write(f"{capture_errors[0]}\n")
            return EXIT_CAPTURE
        result = await service.wait_for_transcription()
        if aborts:
            await asyncio.wait(aborts)
    finally:
        _remove_sigint(loop, installed)
        backend.cleanup()

    if service.state is not RecordingState.READY:
        sys.stderr.write(f"{service.error}\n")
        return EXIT_TRANSCRIPTION

    if as_json:
        sys.stdout.write(json.dumps({
            "text": service.transcript,
            "duration": round(service.duration, 1),
            "latency": service.latency_ms,
            "words": service.word_count,
            "cost": estimated_cost(service.duration),
        }) + "\n")
    else:
        sys.stdout.write(service.transcript + "\n")
    for sink in sinks:
        sink(result)
    return EXIT_OK


async def run_continuous(config: DictaPipeConfig, sinks: List[OutputSink]) -> int:
    """Stream: transcribe each pause-delimited chunk and print results in order."""
    loop = asyncio.get_running_loop()
    backend = create_backend(config)
    service = PipelineService(
        backend,
        settings=config.segmentation_settings(),
        options=config.transcription_options(),
        timeout=config.get_transcription_timeout(),
    )
    handle = service.start_session(SessionMode.CONTINUOUS)
    for sink in sinks:
        sink.subscribe()

    def on_capture_error(error: CaptureUnavailable) -> None:
        loop.create_task(service.fail(handle, error))

    capture = AudioCapture(
        callback=lambda chunk: loop.call_soon_threadsafe(service.feed, handle, chunk),
        sample_rate=config.get('audio.sample_rate'),
        chunk_size=config.get('audio.chunk_size'),
        channels=config.get('audio.channels'),
        on_error=lambda error: loop.call_soon_threadsafe(on_capture_error, error),
    )

    stop_requested = asyncio.Event()
    try:
        try:
            capture.start_recording()
        except CaptureUnavailable as e:
            await service.cancel(handle)
            sys.stderr.write(f"{e}\n")
            return EXIT_CAPTURE

        installed = _install_sigint(loop, stop_requested.set)
        try:
            waiters = [loop.create_task(handle.closed.wait()),
                       loop.create_task(stop_requested.wait())]
            _, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            for waiter in pending:
                waiter.cancel()
            if capture.is_recording:
                capture.stop_recording()
            results = await service.stop(handle)
        finally:
            _remove_sigint(loop, installed)
    finally:
        for sink in sinks:
            sink.close()
        backend.cleanup()

    if handle.error is not None:
        sys.stderr.write(f"{handle.error}\n")
        return EXIT_CAPTURE
    if any(result.is_error for result in results):
        return EXIT_TRANSCRIPTION
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dictapipe",
        description="dictapipe - voice dictation with live segmentation",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: $XDG_CONFIG_HOME/dictapipe/config.yaml)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (overrides config)"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Record once, print transcript to stdout (default)"
    )
    mode.add_argument(
        "--continuous",
        action="store_true",
        help="Keep recording and print each pause-delimited chunk as it is transcribed"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON instead of plain text"
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Also append transcripts to this file"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"dictapipe v{__version__}"
    )
    return parser


def main() -> None:
    """Main entry point for dictapipe."""
    args = build_parser().parse_args()

    try:
        config = DictaPipeConfig(args.config)
        config.require_valid()
    except (FileNotFoundError, ConfigError) as e:
        errors = e.errors if isinstance(e, ConfigError) else [str(e)]
        for error in errors:
            sys.stderr.write(f"Config error: {error}\n")
        sys.exit(EXIT_CONFIG)

    setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))

    sinks: List[OutputSink] = []
    if args.output:
        sinks.append(FileSink(args.output))

    try:
        if args.continuous:
            sinks.insert(0, JsonLinesSink(sys.stdout) if args.json else ConsoleSink())
            code = asyncio.run(run_continuous(config, sinks))
        else:
            code = asyncio.run(run_once(config, args.json, sinks))
    except KeyboardInterrupt:
        sys.stderr.write("Aborted\n")
        code = EXIT_TRANSCRIPTION
    except Exception as e:
        logger.error(f"Application error: {e}", exc_info=True)
        sys.stderr.write(f"Error: {e}\n")
        code = EXIT_TRANSCRIPTION
    sys.exit(code)


if __name__ == "__main__":
    main()
