# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import hashlib
import json
import logging
import os
import zipfile
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)

# Fixed timestamp for archive entries so identical inputs produce identical zips
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)

DEFAULT_EXCLUDE_DIRS = {
    "__pycache__",
    ".pytest_cache",
    ".ruff_cache",
    "build",
    "dist",
    "node_modules",
    ".git",
    ".vscode",
    ".idea",
}

EXCLUDE_FILE_SUFFIXES = (
    ".pyc",
    ".pyo",
    ".checksum",
    ".DS_Store",
)


def strip_bom(content: str) -> str:
    if content and content[0] == "\ufeff":
        return content[1:]
    return content


def read_json_file(file_path: str, default: Optional[Any] = None) -> Any:
    """Read a JSON file, returning default when it does not exist"""
    if not os.path.exists(file_path):
        return default
    with open(file_path, "r", encoding="utf-8") as f:
        return json.loads(strip_bom(f.read()))


def write_json_file(file_path: str, data: Any) -> None:
    os.makedirs(os.path.dirname(file_path) or ".", exist_ok=True)
    with open(file_path, "w", encoding="utf-8") as f:
        f.write(json.dumps(data, indent=4))


def get_file_checksum(file_path: str) -> str:
    """Get SHA256 checksum of a file"""
    if not os.path.exists(file_path):
        return ""

    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for byte_block in iter(lambda: f.read(4096), b""):
            sha256_hash.update(byte_block)
    return sha256_hash.hexdigest()


def _walk_files(directory: str, exclude_dirs: Iterable[str]):
    exclude_dirs = set(exclude_dirs)
    for root, dirs, files in os.walk(directory):
        # Filter out excluded directories in-place to prevent os.walk from descending into them
        dirs[:] = sorted(d for d in dirs if d not in exclude_dirs)
        for file in sorted(files):
            if file.endswith(EXCLUDE_FILE_SUFFIXES):
                continue
            file_path = os.path.join(root, file)
            if os.path.isfile(file_path):
                yield file_path


def get_directory_checksum(
    directory: str, exclude_dirs: Optional[Iterable[str]] = None
) -> str:
    """
    Get combined checksum of all files in a directory

    The relative path of every file takes part in the checksum, so renaming a
    file changes the result. Returns an empty string for missing directories.
    """
    if not os.path.exists(directory):
        return ""
    if exclude_dirs is None:
        exclude_dirs = DEFAULT_EXCLUDE_DIRS

    checksums = []
    for file_path in _walk_files(directory, exclude_dirs):
        relative_path = os.path.relpath(file_path, directory).replace(os.sep, "/")
        combined = f"{relative_path}:{get_file_checksum(file_path)}"
        checksums.append(hashlib.sha256(combined.encode()).hexdigest())

    return hashlib.sha256("".join(checksums).encode()).hexdigest()


def zip_directory(
    source_dir: str, zip_path: str, exclude_dirs: Optional[Iterable[str]] = None
) -> str:
    """
    Zip a directory with sorted entries and fixed timestamps

    Returns:
        The path of the written archive
    """
    if exclude_dirs is None:
        exclude_dirs = set()
    os.makedirs(os.path.dirname(zip_path) or ".", exist_ok=True)

    with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as zipf:
        for file_path in _walk_files(source_dir, exclude_dirs):
            arcname = os.path.relpath(file_path, source_dir).replace(os.sep, "/")
            info = zipfile.ZipInfo(arcname, date_time=ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = 0o644 << 16
            with open(file_path, "rb") as f:
                zipf.writestr(info, f.read())

    logger.debug(f"Zipped {source_dir} to {zip_path}")
    return zip_path


