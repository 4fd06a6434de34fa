import argparse
import json
import sys

import openai
from loguru import logger
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from .config import default_config, load_config
from .errors import ToneFluentError
from .i18n import level_label, status_text
from .languages import lang_code_from_name
from .models import CUSTOM, SLIDER_TONES
from .sdk import ToneSDK
from .session import LockedPositionStore, slider_bucket
from .utils import setup_logging


def _band_table(title: str, bands, sdk: ToneSDK, request, ui_lang: str) -> Table:
    table = Table(title=title)
    table.add_column("Band", style="cyan", no_wrap=True)
    table.add_column("Translation", style="green")
    table.add_column("Reverse translation", style="magenta")
    table.add_column("No change", justify="center", style="yellow")
    table.add_column("Risk", justify="center", style="red")
    table.add_column("Check", style="blue")

    ordered = sorted(bands.items(), key=lambda item: (item[0].tone == CUSTOM, item[0].slider_level))
    seen = set()
    for band, entry in ordered:
        if entry is None:
            continue
        label = f"{CUSTOM}: {band.custom_style}" if band.tone == CUSTOM else level_label(band.slider_level)
        if label in seen:
            continue
        seen.add(label)
        status = sdk.statuses.get(sdk.workflow.key(request, band)).value
        table.add_row(
            label,
            entry.translation,
            entry.reverse_translation,
            "✓" if entry.no_change else "",
            sdk.workflow.get_risk(request, band),
            status_text(ui_lang, status),
        )
    return table


def _load(args):
    if args.config:
        return load_config(args.config)
    if args.provider:
        return default_config(args.provider)
    return default_config()


def main():
    parser = argparse.ArgumentParser(description="Tone-band translation with back-translation and verification")
    parser.add_argument("text", nargs="?", help="Sentence to translate")
    parser.add_argument("--input-file", help="Translate every line of this file instead")
    parser.add_argument("--source-lang", default="日本語", help="Source language (default: 日本語)")
    parser.add_argument("--target-lang", default="英語", help="Target language (default: 英語)")
    parser.add_argument("--config", help="Path to model_config.json")
    parser.add_argument("--provider", choices=["openai", "azure", "proxy", "mock"], help="Provider when no config file is given")
    parser.add_argument("--native", action="store_true", help="Prefer native-sounding expressions")
    parser.add_argument("--all", action="store_true", help="Generate every casual and business band")
    parser.add_argument("--tone", choices=list(SLIDER_TONES), action="append", help="Generate the bands of one tone")
    parser.add_argument("--custom", help="Custom style descriptor (e.g. ギャル)")
    parser.add_argument("--wait-verify", action="store_true", help="Wait for background verification before printing")
    parser.add_argument("--lock", type=float, metavar="POSITION", help="Persist a slider position in [-100, 100]")
    parser.add_argument("--unlock", action="store_true", help="Forget the persisted slider position")
    parser.add_argument("--output", help="Write the bands as JSON to this file")
    parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    args = parser.parse_args()

    setup_logging(args.log_level)

    try:
        config = _load(args)
    except ToneFluentError as e:
        logger.error(str(e))
        sys.exit(1)

    store = LockedPositionStore(config.locked_position_path)
    if args.unlock:
        store.clear()
        logger.info("Locked position cleared")
    if args.lock is not None:
        if not -100 <= args.lock <= 100:
            parser.error("--lock must be between -100 and 100")
        store.save(args.lock)
        logger.info(f"Locked position set to {args.lock} ({level_label(slider_bucket(args.lock))})")

    if args.input_file:
        with open(args.input_file, "r", encoding="utf-8") as f:
            texts = [line.strip() for line in f if line.strip()]
    elif args.text:
        texts = [args.text]
    else:
        if args.lock is None and not args.unlock:
            parser.print_help()
            print("\nError: text or --input-file is required.")
        return

    tones = list(SLIDER_TONES) if args.all or store.load() is not None else (args.tone or [])
    ui_lang = lang_code_from_name(args.source_lang)
    console = Console()
    try:
        sdk = ToneSDK(config)
    except (ToneFluentError, openai.OpenAIError, ValueError) as e:
        logger.error(f"Failed to initialize the translation backends: {e}")
        sys.exit(1)
    results = []
    try:
        for text in tqdm(texts, colour="green", desc="Translation", disable=len(texts) < 2):
            try:
                bands = sdk.translate(text, args.source_lang, args.target_lang, native_mode=args.native,
                                      tones=tones, custom_style=args.custom)
            except ToneFluentError as e:
                logger.error(f"Translation failed for {text!r}: {e}")
                continue
            results.append((text, bands))

        if args.wait_verify:
            sdk.wait_for_verification()

        output = []
        for text, bands in results:
            request = sdk.request(text, args.source_lang, args.target_lang, args.native)
            # Re-read: verification may have repaired entries since generation
            bands = {band: sdk.workflow.get(request, band) or entry for band, entry in bands.items()}
            console.print(_band_table(text, bands, sdk, request, ui_lang))
            output.append({
                "text": text,
                "bands": {
                    (f"{band.name}_{band.custom_style}" if band.custom_style else band.name): {
                        "translation": entry.translation,
                        "reverse_translation": entry.reverse_translation,
                        "no_change": entry.no_change,
                    }
                    for band, entry in bands.items() if entry is not None
                },
            })

        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                json.dump({"results": output, "usage": sdk.usage_report()}, f, ensure_ascii=False, indent=2)
            logger.info(f"Results written to {args.output}")
        logger.info(f"Usage: {sdk.usage_report()}")
    finally:
        sdk.close()


if __name__ == "__main__":
    main()
