#!/usr/bin/env python3
"""
Generate an Ad from the Command Line

Runs one pipeline (points -> upload -> background removal -> compose)
against the configured backend and prints the completion or failure
event as JSON.

    python scripts/generate_ad.py product.png --model-id 200 --price 50 \
        --prompt-suffix "studio lighting"

Environment variables:
    API_BASE_URL: Backend base URL
    API_TOKEN: Bearer token used for every backend call
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from adgen.core.config import settings
from adgen.core.http import BackendClient
from adgen.core.logging import get_logger, setup_logging
from adgen.modules.generation.models import SelectedModel
from adgen.pipeline.orchestrator import PipelineOrchestrator

logger = get_logger(__name__)


async def generate(args) -> bool:
    image_path = Path(args.image)
    model = SelectedModel(
        id=args.model_id,
        seed_value=args.seed_value,
        file_id=args.file_id,
        price=args.price
    )

    async with BackendClient(base_url=args.base_url, token=args.token) as backend:
        orchestrator = PipelineOrchestrator.from_backend(backend)
        run = await orchestrator.start(
            image_path.read_bytes(),
            model,
            prompt_suffix=args.prompt_suffix,
            filename=image_path.name
        )

    event = run.result if run.result is not None else run.failure
    print(json.dumps(event.model_dump(mode="json"), indent=2))
    return run.result is not None


def main():
    parser = argparse.ArgumentParser(
        description="Turn a product photo into an advertisement image"
    )
    parser.add_argument("image", help="Path to the product photo")
    parser.add_argument("--model-id", required=True, help="Selected model id")
    parser.add_argument("--price", type=int, default=0, help="Model price in points")
    parser.add_argument("--seed-value", default=None, help="Model seed value (used as the model file id when numeric)")
    parser.add_argument("--file-id", type=int, default=None, help="Explicit model file id")
    parser.add_argument("--prompt-suffix", default=None, help="Extra compose instruction")
    parser.add_argument("--base-url", default=settings.API_BASE_URL, help="Backend base URL")
    parser.add_argument("--token", default=settings.API_TOKEN, help="Bearer token")
    parser.add_argument("--verbose", action="store_true", help="Console logs at DEBUG level")

    args = parser.parse_args()

    setup_logging(
        log_level="DEBUG" if args.verbose else settings.LOG_LEVEL,
        json_format=not args.verbose
    )

    success = asyncio.run(generate(args))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
