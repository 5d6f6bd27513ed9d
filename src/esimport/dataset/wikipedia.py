"""
Builds the character dataset from a Wikipedia list page.
"""
import json
import logging
from html.parser import HTMLParser
from pathlib import Path
from typing import List, Optional, Union

import requests

from esimport import __version__
from esimport.core.exceptions import DatasetError
from esimport.storage.models import Character

logger = logging.getLogger(__name__)


class WikitableParser(HTMLParser):
    """Collects the ``<td>`` texts of every row of ``table.wikitable`` tables.

    Rows of tables nested inside a wikitable cell are not collected, but their
    text is part of the enclosing cell.
    """

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.rows: List[List[str]] = []
        self._tables: List[bool] = []
        self._row: Optional[List[str]] = None
        self._cell: Optional[List[str]] = None

    def _in_wikitable(self) -> bool:
        return bool(self._tables) and self._tables[-1]

    def _close_cell(self) -> None:
        if self._cell is not None and self._row is not None:
            self._row.append("".join(self._cell))
        self._cell = None

    def _close_row(self) -> None:
        self._close_cell()
        if self._row is not None:
            self.rows.append(self._row)
        self._row = None

    def handle_starttag(self, tag, attrs):
        if tag == "table":
            classes = (dict(attrs).get("class") or "").split()
            self._tables.append("wikitable" in classes)
        elif not self._in_wikitable():
            return
        elif tag == "tr":
            self._close_row()
            self._row = []
        elif tag in ("td", "th") and self._row is not None:
            self._close_cell()
            if tag == "td":
                self._cell = []

    def handle_endtag(self, tag):
        if tag == "table":
            if self._in_wikitable():
                self._close_row()
            if self._tables:
                self._tables.pop()
        elif not self._in_wikitable():
            return
        elif tag == "td":
            self._close_cell()
        elif tag == "tr":
            self._close_row()

    def handle_data(self, data):
        if self._cell is not None:
            self._cell.append(data)


def parse_characters(html: str) -> List[Character]:
    """Turn every three-cell wikitable row into a Character; skip the others."""
    parser = WikitableParser()
    parser.feed(html)
    parser.close()

    characters = []
    for cells in parser.rows:
        if len(cells) != 3:
            continue
        name, portrayal, description = (_strip_newline(cell) for cell in cells)
        characters.append(Character(name=name, portrayal=portrayal, description=description))
    return characters


def _strip_newline(text: str) -> str:
    return text[:-1] if text.endswith("\n") else text


class WikipediaDatasetClient:
    """Downloads a Wikipedia list page and writes it out as a JSON dataset."""

    def __init__(self, timeout: int = 30):
        self.timeout = timeout
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({
            'User-Agent': f'esimport/{__version__}',
            'Accept': 'text/html'
        })
        return session

    def fetch_characters(self, url: str) -> List[Character]:
        logger.debug(f"Creating dataset from {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise DatasetError(f"Could not download dataset from {url}: {e}") from e

        characters = parse_characters(response.text)
        logger.info(f"Found {len(characters)} characters at {url}")
        return characters

    def generate_dataset(self, url: str, output_file: Union[str, Path]) -> int:
        """Download ``url`` and write its characters to ``output_file``.

        Returns:
            Number of characters written.
        """
        characters = self.fetch_characters(url)
        logger.debug(f"Writing dataset to '{output_file}'")
        try:
            with open(output_file, 'w', encoding='utf-8') as f:
                json.dump([c.model_dump() for c in characters], f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise DatasetError(f"Could not write dataset to {output_file}: {e}") from e
        logger.info(f"Dataset {output_file} successfully created")
        return len(characters)
