"""
Entry point and auto-restart wrapper.
"""

import sys
import time
import threading

from .constants import AGENT_VERSION
from .config import log, safe_print, setup_logging, LOG_FILE
from .engine import build_engine
from .platform_win import ensure_single_instance


def main(stop_event=None):
    """Primary agent entry point."""
    safe_print("Endpoint Health Agent v" + AGENT_VERSION)
    safe_print()

    sink = setup_logging(LOG_FILE)

    if not ensure_single_instance():
        safe_print("Already running. Exiting.")
        sys.exit(0)

    engine = build_engine()

    # Log limits are configurable through the state file.
    sink.max_bytes = engine.ctx.state.log_max_bytes
    sink.keep = engine.ctx.state.log_archive_count

    engine.run(stop_event or threading.Event())


def run_with_auto_restart():
    """
    Wrapper that auto-restarts on crash. Never gives up.
    Crash counter resets if the agent ran for 2+ minutes (not a boot-loop).
    """
    crash_count = 0
    crash_window = 120
    max_rapid_crashes = 10

    while True:
        start_time = time.time()
        try:
            main()
            break
        except KeyboardInterrupt:
            safe_print("\nAgent stopped by user.")
            break
        except SystemExit as e:
            if str(e) == "0":
                break
            log.error("Agent SystemExit: %s", e)
        except Exception as e:
            elapsed = time.time() - start_time
            log.error("Agent crashed after %.0fs: %s", elapsed, e, exc_info=True)

            if elapsed > crash_window:
                crash_count = 0
            crash_count += 1

            if crash_count >= max_rapid_crashes:
                wait = 120
                log.warning("Many rapid crashes (%d). Waiting %ds...", crash_count, wait)
            else:
                wait = min(10 * crash_count, 60)

            log.info("Restarting in %ds (crash %d)...", wait, crash_count)
            time.sleep(wait)
