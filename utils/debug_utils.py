# utils/debug_utils.py
import json
import os
import time
import traceback
from datetime import datetime
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)

# Directory for debug logs
DEBUG_DIR = "debug_logs"


def ensure_debug_dir(directory: str = DEBUG_DIR) -> str:
    """Ensure the debug directory exists"""
    os.makedirs(directory, exist_ok=True)
    return directory


def _serializable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, dict):
        return {str(k): _serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_serializable(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def dump_discovery_state(stage_name: str, state: Dict[str, Any],
                         error: Optional[Exception] = None,
                         directory: str = DEBUG_DIR) -> Optional[str]:
    """
    Write the state of a discovery run to a JSON file for offline inspection.

    Args:
        stage_name (str): Name of the stage being dumped
        state (dict): Discovery state (visited URLs, verdicts, result, stats)
        error (Exception, optional): Exception if there was an error

    Returns:
        str: Path to the created debug file, or None if writing failed
    """
    try:
        ensure_debug_dir(directory)
        safe_stage = "".join(c if c.isalnum() or c in "-_" else "_" for c in stage_name)
        filename = os.path.join(directory, f"{int(time.time() * 1000)}_{safe_stage}.json")

        payload = {
            "stage": stage_name,
            "timestamp": datetime.now().isoformat(),
            "state": _serializable(state),
        }
        if error is not None:
            payload["error"] = {
                "type": type(error).__name__,
                "message": str(error),
                "traceback": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
            }

        with open(filename, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)

        logger.debug(f"Debug state written to {filename}")
        return filename
    except OSError as e:
        logger.error(f"Failed to write debug state for {stage_name}: {e}")
        return None
