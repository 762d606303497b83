"""Command-line entry point: identify a photo or run the HTTP service."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from dishid.config import get_settings
from dishid.errors import (
    DishIDError,
    InvalidImage,
    LabelTableMismatch,
    MalformedRow,
    ModelNotReady,
    ProvisioningError,
)
from dishid.ml.labels import load_labels
from dishid.ml.model_manager import ModelProvisioner
from dishid.ml.pipeline import DishIdentifier

if TYPE_CHECKING:
    from collections.abc import Sequence

    from dishid.config import Settings

logger = logging.getLogger(__name__)

EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_MODEL_UNAVAILABLE = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dishid", description="Identify the dish in a food photo.")
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug output and the raw score")
    sub = parser.add_subparsers(dest="command", required=True)

    identify = sub.add_parser("identify", help="predict the food shown in an image file")
    identify.add_argument("image", type=Path, help="path to the input image (jpg/png/...)")
    identify.add_argument("--labels", type=Path, default=None, help="label CSV (overrides DISHID_LABELS_PATH)")
    identify.add_argument("--model", type=Path, default=None, help="local model file (overrides DISHID_BUNDLED_MODEL_PATH)")
    identify.add_argument("--unsigned", action="store_true", help="compare output scores as unsigned bytes")
    identify.add_argument(
        "-v", "--verbose", action="store_true", default=argparse.SUPPRESS, help="log debug output and the raw score"
    )

    serve = sub.add_parser("serve", help="run the HTTP service")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    return parser


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """CLI flags take priority over environment settings when given."""
    updates: dict[str, object] = {
        # A one-shot run must not wait on a background model refresh.
        "update_in_background": False,
    }
    if args.labels is not None:
        updates["labels_path"] = args.labels
    if args.model is not None:
        updates["bundled_model_path"] = args.model
    if args.unsigned:
        updates["signed_scores"] = False
    return settings.model_copy(update=updates)


def _identify(args: argparse.Namespace) -> int:
    settings = _apply_overrides(get_settings(), args)
    try:
        labels = load_labels(settings.labels_path)
        labels.check_size(settings.output_size, strict=settings.strict_label_count)
    except (FileNotFoundError, MalformedRow, LabelTableMismatch) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE

    provisioner = ModelProvisioner(settings)
    try:
        provisioner.provision()
        prediction = DishIdentifier(provisioner.handle, labels, settings).identify_path(args.image)
    except (ProvisioningError, ModelNotReady) as exc:
        print(f"error: model unavailable: {exc}", file=sys.stderr)
        return EXIT_MODEL_UNAVAILABLE
    except InvalidImage as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except DishIDError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        provisioner.shutdown()

    if args.verbose:
        print(prediction.diagnostic)
    print(prediction.message)
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "dishid.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level="debug" if args.verbose else "info",
    )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if args.command == "identify":
        return _identify(args)
    return _serve(args)


if __name__ == "__main__":
    sys.exit(main())
