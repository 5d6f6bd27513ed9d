"""
Bulk API payload generation.

A payload holds two lines per document: an ``index`` action header carrying a
fresh UUID, then the document itself on a single line. Documents keep the
JSON text of the input file, only whitespace between tokens is dropped.
"""
import atexit
import json
import logging
import os
import re
import tempfile
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TextIO, Union

from tqdm import tqdm

from esimport.core.exceptions import PayloadError

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"[ \t\n\r]*")
_STRING_OR_WHITESPACE = re.compile(r'("(?:[^"\\]|\\.)*")|[ \t\n\r]+')


def _reject_constant(name: str):
    raise PayloadError(f"{name} is not valid JSON")


_DECODER = json.JSONDecoder(parse_constant=_reject_constant)


def action_header(index: str, doc_id: str, doc_type: Optional[str] = None) -> Dict[str, Any]:
    """Bulk ``index`` action for one document."""
    action = {"_index": index}
    if doc_type:
        action["_type"] = doc_type
    action["_id"] = doc_id
    return {"index": action}


def compact_json(value: Any) -> str:
    """Serialize ``value`` on one line, the way ``jq -c`` does.

    Raises:
        ValueError: ``value`` holds NaN or an infinity.
    """
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def compact_text(text: str) -> str:
    """Drop the whitespace between the tokens of a JSON text."""
    return _STRING_OR_WHITESPACE.sub(lambda m: m.group(1) or "", text)


def split_array(text: str, source: str = "input") -> List[str]:
    """Split a JSON array into the compact texts of its elements.

    Number literals and string escapes are kept as written.

    Raises:
        PayloadError: ``text`` is not a JSON array, or holds NaN or an infinity.
    """
    idx = _WHITESPACE.match(text, 0).end()
    if text[idx:idx + 1] != "[":
        raise PayloadError(f"{source} should contain a JSON array")

    elements = []
    idx = _WHITESPACE.match(text, idx + 1).end()
    if text[idx:idx + 1] == "]":
        idx += 1
    else:
        while True:
            try:
                _, end = _DECODER.raw_decode(text, idx)
            except (json.JSONDecodeError, PayloadError) as e:
                raise PayloadError(f"Could not read input file {source}: {e}") from e
            elements.append(compact_text(text[idx:end]))

            idx = _WHITESPACE.match(text, end).end()
            separator = text[idx:idx + 1]
            idx = _WHITESPACE.match(text, idx + 1).end() if separator else idx
            if separator == "]":
                break
            if separator != ",":
                raise PayloadError(f"Could not read input file {source}: expected ',' or ']' at char {end}")

    if _WHITESPACE.match(text, idx).end() != len(text):
        raise PayloadError(f"Could not read input file {source}: extra data at char {idx}")
    return elements


def load_records(input_file: Union[str, Path]) -> List[str]:
    """Read the JSON array of records to import, one compact text per record."""
    try:
        with open(input_file, "r", encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        raise PayloadError(f"Could not read input file {input_file}: {e}") from e
    return split_array(text, str(input_file))


def write_bulk_payload(documents: Iterable[str], index: str, out: TextIO,
                       doc_type: Optional[str] = None,
                       id_factory: Callable[[], Any] = uuid.uuid4,
                       show_progress: bool = False) -> int:
    """Write the bulk payload for the serialized ``documents`` to ``out``.

    Returns:
        Number of documents written.
    """
    count = 0
    for document in tqdm(documents, desc="Generating bulk input", unit="doc", disable=not show_progress):
        out.write(compact_json(action_header(index, str(id_factory()), doc_type)))
        out.write("\n")
        out.write(document)
        out.write("\n")
        count += 1
    return count


class BulkFile:
    """Temporary file holding a bulk payload.

    The file is removed when the ``with`` block exits, whatever the reason,
    and again at interpreter exit in case the block never unwound.
    """

    def __init__(self, directory: Optional[str] = None):
        self.directory = directory
        self.path: Optional[Path] = None

    def __enter__(self) -> "BulkFile":
        try:
            fd, name = tempfile.mkstemp(prefix="esimport-bulk-", suffix=".ndjson", dir=self.directory)
        except OSError as e:
            raise PayloadError(f"Could not create temporary input file: {e}") from e
        os.close(fd)
        self.path = Path(name)
        atexit.register(self.cleanup)
        logger.debug(f"Saving bulk input file to {self.path}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()
        atexit.unregister(self.cleanup)

    def cleanup(self) -> None:
        if self.path is not None and self.path.exists():
            self.path.unlink()
            logger.debug(f"Removed bulk input file {self.path}")

    def generate(self, input_file: Union[str, Path], index: str,
                 doc_type: Optional[str] = None, show_progress: bool = False) -> int:
        """Fill the file with the bulk payload for the records in ``input_file``."""
        if self.path is None:
            raise PayloadError("BulkFile must be entered before generating a payload")

        documents = load_records(input_file)
        with open(self.path, "w", encoding="utf-8") as out:
            count = write_bulk_payload(documents, index, out, doc_type=doc_type,
                                       show_progress=show_progress)
        logger.info(f"Generated bulk input for {count} documents from {input_file}")
        return count
