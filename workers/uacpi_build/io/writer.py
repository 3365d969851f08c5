"""
Writer — serialize the build receipt and read back the previous one.

Filesystem layout:
    <out_dir>/libuacpi.a
    <out_dir>/bindings.py
    <out_dir>/uacpi_build_receipt.json
"""
import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from uacpi_build.io.schema import BuildReceipt

logger = logging.getLogger(__name__)

RECEIPT_FILE = "uacpi_build_receipt.json"


def write_receipt(receipt: BuildReceipt, out_dir: Path) -> Path:
    """
    Write *receipt* into *out_dir*.

    Creates *out_dir* if it does not exist.
    Returns the receipt path.
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / RECEIPT_FILE
    path.write_text(
        json.dumps(
            receipt.model_dump(mode="json"),
            indent=2,
            sort_keys=True,
        )
        + "\n"
    )
    return path


def read_previous_receipt(out_dir: Path) -> Optional[BuildReceipt]:
    """Receipt of the last successful build, or None if absent or unreadable."""
    path = out_dir / RECEIPT_FILE
    if not path.is_file():
        return None
    try:
        return BuildReceipt.model_validate_json(path.read_text())
    except ValidationError as e:
        logger.warning("Ignoring unreadable previous receipt %s: %s", path, e)
        return None


def drift_messages(previous: Optional[BuildReceipt], current: BuildReceipt) -> List[str]:
    """Differences worth flagging between two successive builds."""
    if previous is None:
        return []
    messages = []
    old_commit = previous.dependency.commit
    new_commit = current.dependency.commit
    if old_commit and new_commit and old_commit != new_commit:
        messages.append(f"uACPI moved from {old_commit[:12]} to {new_commit[:12]}")
    if previous.configuration.fingerprint != current.configuration.fingerprint:
        messages.append("build configuration changed since the previous build")
    return messages
