# uploadgate/services/s3_keys.py
import uuid
from typing import Optional, Tuple


def split_filename(filename: str) -> Tuple[str, str]:
    """
    Splits a client filename into (name, extension).

    Directory components are dropped (both '/' and '\\'), the extension is
    everything after the last dot of the base name and may be empty.
    """
    base = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in base:
        return base, ""
    name, _, ext = base.rpartition(".")
    return name, ext


def generate_file_key(
    filename: str,
    *,
    storage_path: Optional[str] = None,
    keep_original_name: bool = False,
) -> str:
    """[storage_path/]name[.ext], name = original base name or a fresh uuid4."""
    name, ext = split_filename(filename)
    if not keep_original_name or not (name or ext):
        name = str(uuid.uuid4())

    leaf = f"{name}.{ext}" if ext else name
    prefix = (storage_path or "").strip("/")
    return f"{prefix}/{leaf}" if prefix else leaf
