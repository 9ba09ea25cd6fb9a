"""JSON persistence for the daily report."""
import json
from pathlib import Path
from typing import Any, Dict

from crypto_digest.utils import setup_logger

logger = setup_logger(__name__)

LATEST_FILENAME = "latest.json"


def report_filename(date_key: str) -> str:
    return f"crypto-data-{date_key}.json"


def save_report(report: Dict[str, Any], output_dir: Path, date_key: str) -> Path:
    """
    Write the report as ``crypto-data-<date>.json`` and refresh ``latest.json``.

    Returns:
        Path of the dated file
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    file_path = output_dir / report_filename(date_key)
    latest_path = output_dir / LATEST_FILENAME
    for path in (file_path, latest_path):
        with open(path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2, ensure_ascii=False)

    logger.info(f"📁 Saved to: {file_path}")
    logger.info(f"📁 Latest: {latest_path}")
    return file_path
