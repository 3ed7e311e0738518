"""
Label file loading.

A label file is a newline-separated list of class names where the line
index is the class id. Reading stops at the first blank line, so trailing
notes after an empty line are ignored.
"""

import logging
from pathlib import Path
from typing import List, Union

logger = logging.getLogger(__name__)


def load_labels(path: Union[str, Path]) -> List[str]:
    """Read class names from a label file.

    Args:
        path: Path to the label file.

    Returns:
        Class names ordered by class id.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file yields no labels.
    """
    label_path = Path(path)
    if not label_path.is_file():
        raise FileNotFoundError(
            f"Label file not found.\n"
            f"  Expected: {label_path}\n"
            f"  Provide the file or update 'model.label_path' in your config."
        )

    labels: List[str] = []
    with open(label_path, "r", encoding="utf-8") as f:
        for line in f:
            name = line.rstrip("\r\n")
            if name == "":
                break
            labels.append(name)

    if not labels:
        raise ValueError(f"Label file is empty: {label_path}")

    logger.info("Loaded %d labels from %s", len(labels), label_path)
    return labels
