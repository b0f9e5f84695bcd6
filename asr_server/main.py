import argparse
import json
import sys
from concurrent import futures
from pathlib import Path
from typing import Dict, List, Optional

from asr_server.backend.application import ModelRegistry, RecognitionResult, Recognizer
from asr_server.backend.component.chunk_driver import iter_chunks
from asr_server.backend.runtime.metrics import Metrics
from asr_server.config import (
    DEFAULT_CONFIG_PATH,
    ModelSpec,
    ServerConfig,
    load_config,
)
from asr_server.config.default import DEFAULT_LANGUAGE_CODE, DEFAULT_MODEL_NAME
from asr_server.errors import STTError, payload_for
from asr_server.utils.audio import read_wav
from asr_server.utils.logger import LOGGER, configure_logging


def decode_files(
    config: ServerConfig,
    files: List[Path],
    model: str,
    language_code: str,
    stream: bool = False,
    metrics: Optional[Metrics] = None,
) -> List[Dict]:
    """Decode WAV files concurrently, one thread per file."""
    registry = ModelRegistry(hooks=metrics.hooks() if metrics else None)
    try:
        registry.load_models(config.models)
        recognizer = Recognizer(registry, chunk_size_sec=config.chunk_size_sec)

        def _decode(path: Path) -> Dict:
            try:
                samples, sample_rate = read_wav(path)
                if stream:
                    result: RecognitionResult = recognizer.streaming_recognize(
                        model,
                        language_code,
                        iter_chunks(samples, sample_rate, config.chunk_size_sec),
                        sample_rate,
                        n_best=config.n_best,
                        word_level=config.word_level,
                    )
                else:
                    result = recognizer.recognize(
                        model,
                        language_code,
                        samples,
                        sample_rate,
                        n_best=config.n_best,
                        word_level=config.word_level,
                    )
            except STTError as exc:
                LOGGER.error("Failed to decode %s: %s", path, exc)
                return {"file": str(path), "error": payload_for(exc.code, exc.detail)}
            payload = result.to_dict()
            payload["file"] = str(path)
            return payload

        if not files:
            return []
        with futures.ThreadPoolExecutor(max_workers=len(files)) as executor:
            return list(executor.map(_decode, files))
    finally:
        registry.close()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Decode WAV files with pooled lattice decoders"
    )
    parser.add_argument("files", nargs="*", help="PCM16 WAV files to decode")
    parser.add_argument(
        "--config",
        type=str,
        help=f"Path to YAML config (default search: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--model-dir",
        default=None,
        help="Decode with a single model directory instead of the configured models",
    )
    parser.add_argument(
        "--model", default=None, help=f"Model name (default: {DEFAULT_MODEL_NAME})"
    )
    parser.add_argument(
        "--language",
        default=None,
        help=f"Model language code (default: {DEFAULT_LANGUAGE_CODE})",
    )
    parser.add_argument(
        "--pool-size",
        type=int,
        default=None,
        help="Number of pre-built decoders for --model-dir",
    )
    parser.add_argument("--n-best", type=int, default=None, help="Alternatives to return")
    parser.add_argument(
        "--word-level",
        dest="word_level",
        action="store_true",
        help="Attach word timings and confidences to the top alternative",
    )
    parser.add_argument(
        "--no-word-level",
        dest="word_level",
        action="store_false",
        help="Disable word-level output (overrides config)",
    )
    parser.set_defaults(word_level=None)
    parser.add_argument(
        "--chunk-size",
        type=float,
        default=None,
        help="Seconds of audio per chunk fed to the decoder (<=0: whole file)",
    )
    parser.add_argument(
        "--stream",
        action="store_true",
        help="Feed chunks through the incremental streaming path",
    )
    parser.add_argument(
        "--print-metrics",
        action="store_true",
        help="Print stage timing metrics after decoding",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, TRACE); overrides config",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional log file path; overrides config",
    )
    return parser.parse_args(argv)


def configure_from_args(args: argparse.Namespace) -> ServerConfig:
    config_arg_path = Path(args.config).expanduser() if args.config else None
    effective_config_path = config_arg_path or DEFAULT_CONFIG_PATH
    config = load_config(effective_config_path)

    if args.model_dir is not None:
        config.models = [
            ModelSpec(
                path=str(Path(args.model_dir).expanduser()),
                name=args.model or DEFAULT_MODEL_NAME,
                language_code=args.language or DEFAULT_LANGUAGE_CODE,
                n_decoders=args.pool_size or 1,
            ).validate()
        ]
    if args.n_best is not None:
        config.n_best = args.n_best
    if args.word_level is not None:
        config.word_level = args.word_level
    if args.chunk_size is not None:
        config.chunk_size_sec = args.chunk_size
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_file is not None:
        config.log_file = args.log_file

    configure_logging(config.log_level, config.log_file, config.transcript_log_file)
    if effective_config_path.exists():
        LOGGER.info("Loaded config from %s", effective_config_path)
    else:
        LOGGER.info(
            "Config file not found at %s; using defaults/CLI overrides",
            effective_config_path,
        )
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = configure_from_args(args)
    if not config.models:
        LOGGER.error("No models configured; pass --model-dir or a config with models")
        return 2
    model = args.model or config.models[0].name
    language_code = args.language or config.models[0].language_code
    metrics = Metrics() if args.print_metrics else None

    results = decode_files(
        config,
        [Path(f).expanduser() for f in args.files],
        model,
        language_code,
        stream=args.stream,
        metrics=metrics,
    )
    for payload in results:
        print(json.dumps(payload, ensure_ascii=False))
    if metrics is not None:
        print(json.dumps({"metrics": metrics.snapshot()}))
    return 1 if any("error" in payload for payload in results) else 0


if __name__ == "__main__":
    sys.exit(main())
