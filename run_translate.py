from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from booktranslate.config import PROVIDERS, TranslateConfig, load_config
from booktranslate.epub_reader import EpubReadError, EpubReader
from booktranslate.html_parser import extract_segments
from booktranslate.storage import SegmentWriter
from booktranslate.translator import (
    BaseTranslator,
    DummyTranslator,
    OllamaTranslator,
    TranslationError,
    translate_segments,
)
from booktranslate.utils import setup_logger


def build_translator(cfg: TranslateConfig) -> BaseTranslator:
    if cfg.provider == "ollama":
        return OllamaTranslator(cfg.ollama())
    if cfg.provider == "dummy":
        return DummyTranslator()
    raise ValueError(f"Unknown translation provider: {cfg.provider}")


def translate_book(
    reader: Any,
    cfg: TranslateConfig,
    translator: BaseTranslator,
    writer: SegmentWriter,
    logger: Optional[logging.Logger] = None,
) -> int:
    """Translate every page of `reader` in order. Returns the number of segments written."""

    written = 0
    for page in range(reader.page_count):
        reader.set_current_page(page)
        segments, total = extract_segments(reader.get_current(), cfg.tags, cfg.blacklist)
        if logger:
            logger.info("   Page %s/%s: %s segments (%s lines).", page + 1, reader.page_count, len(segments), total)
        written += translate_segments(
            segments,
            total,
            translator=translator,
            writer=writer,
            language=cfg.language,
            model=cfg.model,
            passes=cfg.passes,
            timeout=cfg.timeout_seconds,
            logger=logger,
        )
    return written


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    keys = ["model", "language", "tags", "blacklist", "passes", "host", "port", "provider", "logs_dir"]
    overrides = {k: getattr(args, k, None) for k in keys}
    overrides["timeout_seconds"] = getattr(args, "timeout", None)
    return overrides


def _load_or_exit(args: argparse.Namespace) -> TranslateConfig:
    try:
        return load_config(args.config, _cli_overrides(args))
    except (OSError, ValueError) as exc:
        raise SystemExit(f"Invalid configuration: {exc}")


def run_translate(args: argparse.Namespace) -> None:
    cfg = _load_or_exit(args)
    logger = setup_logger(cfg.logs_dir)
    logger.info(
        "Config: provider=%s model=%s language=%s tags=%s blacklist=%s passes=%s service=%s:%s",
        cfg.provider,
        cfg.model,
        cfg.language,
        ",".join(cfg.tags),
        ",".join(cfg.blacklist),
        cfg.passes,
        cfg.host,
        cfg.port,
    )

    try:
        logger.info("1) Reading EPUB…")
        reader = EpubReader(args.file)
        logger.info("   %s: %s pages.", reader.title, reader.page_count)
    except EpubReadError as exc:
        logger.error(str(exc))
        raise SystemExit(1)

    translator = build_translator(cfg)

    logger.info("2) Translating to %s with %s (%s refinement passes)…", cfg.language, cfg.model, cfg.passes)
    try:
        with SegmentWriter(args.output, logger=logger) as writer:
            try:
                written = translate_book(reader, cfg, translator, writer, logger=logger)
            finally:
                logger.info("   %s segments written to %s", writer.lines_written, args.output)
    except TranslationError as exc:
        logger.error("Translation aborted: %s", exc)
        raise SystemExit(1)
    except EpubReadError as exc:
        logger.error(str(exc))
        raise SystemExit(1)
    except OSError:
        logger.exception("Writing %s failed.", args.output)
        raise SystemExit(1)

    logger.info("Done: %s segments.", written)


def run_list(args: argparse.Namespace) -> None:
    cfg = _load_or_exit(args)
    logger = setup_logger(cfg.logs_dir)
    try:
        models: List[str] = OllamaTranslator(cfg.ollama()).list_models()
    except TranslationError as exc:
        logger.error(str(exc))
        raise SystemExit(1)
    for name in models:
        print(name)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Translate the prose of an EPUB with a local LLM.")
    sub = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=str, default=None, help="Optional JSON config file")
    common.add_argument("--host", type=str, default=None, help="Ollama host (default: localhost)")
    common.add_argument("--port", type=int, default=None, help="Ollama port (default: 11434)")
    common.add_argument("--logs-dir", dest="logs_dir", type=str, default=None, help="Log directory (default: logs)")

    sub.add_parser("list", parents=[common], help="List the models available on the service")

    tr = sub.add_parser("translate", parents=[common], help="Translate a book")
    tr.add_argument("-f", "--file", required=True, help="EPUB file to translate")
    tr.add_argument("-o", "--output", required=True, help="Where to save the translated text")
    tr.add_argument("-m", "--model", default=None, help="Model to use (default: thinkverse/towerinstruct)")
    tr.add_argument("-l", "--language", default=None, help="Language to translate to (default: English)")
    tr.add_argument("-t", "--tags", nargs="+", default=None, help="Tags whose text is translated (default: p)")
    tr.add_argument("-b", "--blacklist", nargs="+", default=None, help="Tags whose subtree is skipped (default: rt)")
    tr.add_argument("-p", "--passes", type=int, default=None, help="Refinement passes per segment (default: 1)")
    tr.add_argument("--timeout", type=float, default=None, help="Seconds allowed per model call (default: 20)")
    tr.add_argument("--provider", choices=PROVIDERS, default=None, help="Translation backend (default: ollama)")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    args = build_parser().parse_args(argv)
    if args.command == "list":
        run_list(args)
    else:
        run_translate(args)


if __name__ == "__main__":
    main()
