#!/usr/bin/env python3
"""
Kie Video - Command-line Entry Point

Generates a video through Kie.ai and prints progress as it goes.

Usage:
    # Text-to-video with VEO 3.1
    python main.py generate --prompt "A cat surfing at sunset"

    # Image-to-video with Sora 2
    python main.py generate --model "Sora 2" --prompt "Slow zoom" --image ./cat.png

    # Check remaining credits
    python main.py credits
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from typing import Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("kievideo")


def print_progress(state):
    print(f"[{datetime.now().strftime('%H:%M:%S')}] {state.value}")


async def generate_video(
    prompt: str,
    model: str,
    images: Optional[list[str]] = None,
    video_url: Optional[str] = None,
    aspect_ratio: str = "16:9",
    duration: Optional[str] = None,
    callback_url: Optional[str] = None,
) -> Optional[str]:
    """
    Generate a single video and return its URL (None on failure).

    Args:
        prompt: Text prompt
        model: "VEO 3.1", "Sora 2" or "Watermark Remover"
        images: Local paths or URLs of conditioning frames
        video_url: Source video for watermark removal
        aspect_ratio: "16:9", "9:16" or "Auto"
        duration: Clip length in seconds
        callback_url: Optional provider completion callback
    """
    from core.config import get_config
    from services.video_generation import (
        GenerationRequest,
        VideoGenerationClient,
        VideoGenerationError,
    )

    config = get_config()
    for issue in config.validate():
        logger.warning(f"Config: {issue}")

    async with VideoGenerationClient.from_config(config, on_progress=print_progress) as client:
        try:
            request = GenerationRequest(
                prompt=prompt,
                model=model,
                image_urls=images or [],
                video_url=video_url,
                aspect_ratio=aspect_ratio,
                duration=duration,
                callback_url=callback_url,
            )
            url = await client.generate(request)
        except VideoGenerationError as e:
            print(f"Failed ({type(e).__name__}): {e}", file=sys.stderr)
            if client.task_id:
                print(f"Task ID: {client.task_id}", file=sys.stderr)
            return None

    print(url)
    return url


async def show_credits() -> bool:
    """Print remaining Kie.ai credits."""
    from core.config import get_config
    from services.video_generation import KieProviderClient, VideoGenerationError

    config = get_config()
    async with KieProviderClient(
        api_key=config.api.kie_api_key,
        base_url=config.api.kie_api_base,
        timeout=config.http.request_timeout,
    ) as client:
        try:
            credits = await client.get_credits()
        except VideoGenerationError as e:
            print(f"Failed ({type(e).__name__}): {e}", file=sys.stderr)
            return False

    print(f"Credits: {credits:g}")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Kie Video - AI video generation via Kie.ai",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python main.py generate --prompt "A golden retriever running through a field"
    python main.py generate --model "Sora 2" --prompt "Waves" --aspect-ratio 9:16 --duration 15
    python main.py generate --model "Watermark Remover" --video-url https://...
    python main.py credits
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Generate command
    gen_parser = subparsers.add_parser("generate", help="Generate a video")
    gen_parser.add_argument("--prompt", "-p", default="", help="Text prompt")
    gen_parser.add_argument(
        "--model",
        "-m",
        choices=["VEO 3.1", "Sora 2", "Watermark Remover"],
        default="VEO 3.1",
        help="Generation model",
    )
    gen_parser.add_argument(
        "--image",
        "-i",
        action="append",
        dest="images",
        help="Conditioning image (path or URL), repeat for first/last frame",
    )
    gen_parser.add_argument("--video-url", help="Source video for watermark removal")
    gen_parser.add_argument(
        "--aspect-ratio",
        "-a",
        choices=["16:9", "9:16", "Auto"],
        default="16:9",
        help="Aspect ratio",
    )
    gen_parser.add_argument("--duration", "-d", choices=["8", "10", "15"], help="Duration in seconds")
    gen_parser.add_argument("--callback-url", help="Completion callback URL")

    # Credits command
    subparsers.add_parser("credits", help="Show remaining account credits")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "generate":
        result = asyncio.run(
            generate_video(
                prompt=args.prompt,
                model=args.model,
                images=args.images,
                video_url=args.video_url,
                aspect_ratio=args.aspect_ratio,
                duration=args.duration,
                callback_url=args.callback_url,
            )
        )
        sys.exit(0 if result else 1)

    elif args.command == "credits":
        ok = asyncio.run(show_credits())
        sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
