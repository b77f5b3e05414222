#!/usr/bin/env python3
"""
Video Replay Script
===================

Standalone script that feeds a recorded screen video through the full
frame pipeline (gate -> processor -> matcher -> artifact writer).

This script:
    1. Loads templates from the configured template directory
    2. Replays the video through the capture gate for a fixed duration
    3. Logs gate and processor stats every few seconds
    4. Reports a final summary

Sync jobs are disabled; nothing is uploaded.

Usage:
    python scripts/replay_video.py --video recording.mp4 --duration 60
    python scripts/replay_video.py --video recording.mp4 --config config.yaml
"""

import argparse
import asyncio
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from screenwatch.config import load_config
from screenwatch.monitor import ScreenMonitor


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_replay(
    video: str,
    config_path: str,
    duration: int,
    report_interval: int,
) -> dict:
    """
    Replay a video through a ScreenMonitor.

    Args:
        video: Video file fed to the capture gate
        config_path: Optional config.yaml
        duration: Replay duration in seconds
        report_interval: Seconds between progress reports

    Returns:
        Final metrics dict
    """
    settings = load_config(config_path)
    settings.capture.source_path = video
    settings.sync.enabled = False

    logger.info("=" * 60)
    logger.info("Video Replay")
    logger.info("=" * 60)
    logger.info(f"Video: {video}")
    logger.info(f"Duration: {duration} seconds")
    logger.info(f"Detect per second: {settings.capture.detect_per_second}")
    logger.info(f"Match threshold: {settings.matching.match_threshold}")
    logger.info("=" * 60)

    monitor = ScreenMonitor(settings)
    await monitor.start()

    start_time = time.time()
    last_report_time = start_time

    try:
        while time.time() - start_time < duration:
            if monitor.source is not None and not monitor.source.running:
                logger.info("Video source finished")
                break

            if time.time() - last_report_time >= report_interval:
                gate = monitor.gate.metrics
                processor = monitor.processor.metrics
                logger.info("-" * 40)
                logger.info(f"Progress Report (elapsed: {time.time() - start_time:.0f}s)")
                logger.info(f"  Frames received: {gate.frames_received}")
                logger.info(f"  Frames admitted: {gate.frames_admitted}")
                logger.info(f"  Dropped busy/rate/dup: "
                            f"{gate.dropped_busy}/{gate.dropped_rate}/{gate.dropped_duplicate}")
                logger.info(f"  Matches: {processor.matches}")
                logger.info(f"  Blank frames: {processor.blank_frames}")
                last_report_time = time.time()

            await asyncio.sleep(0.5)

    except KeyboardInterrupt:
        logger.info("Replay interrupted by user")
    finally:
        await monitor.shutdown()

    total_time = time.time() - start_time
    summary = monitor.metrics()

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Templates: {summary['templates']['count']}")
    logger.info(f"Frames admitted: {summary['gate']['frames_admitted']}")
    logger.info(f"Matches: {summary['processor']['matches']}")
    logger.info(f"Forced saves: {summary['processor']['forced_saves']}")
    logger.info(f"Artifacts saved: {summary['artifacts']['saved']}")
    logger.info(f"Processor errors: {summary['processor']['errors']}")
    logger.info("=" * 60)

    return {
        "duration": total_time,
        "frames_admitted": summary["gate"]["frames_admitted"],
        "matches": summary["processor"]["matches"],
        "errors": summary["processor"]["errors"],
    }


def main():
    parser = argparse.ArgumentParser(
        description="Replay a screen recording through the frame pipeline"
    )
    parser.add_argument(
        "--video",
        type=str,
        required=True,
        help="Video file to replay",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=os.environ.get("SCREENWATCH_CONFIG"),
        help="Path to config.yaml",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=60,
        help="Replay duration in seconds (default: 60)",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=10,
        help="Seconds between progress reports (default: 10)",
    )

    args = parser.parse_args()

    result = asyncio.run(run_replay(
        video=args.video,
        config_path=args.config,
        duration=args.duration,
        report_interval=args.report_interval,
    ))

    sys.exit(0 if result["frames_admitted"] > 0 and result["errors"] == 0 else 1)


if __name__ == "__main__":
    main()
