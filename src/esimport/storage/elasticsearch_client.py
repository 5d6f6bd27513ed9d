"""
Elasticsearch client for index creation and bulk import.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from opensearchpy import OpenSearch
from opensearchpy.exceptions import TransportError

from esimport.core.config import ElasticsearchConfig
from esimport.core.exceptions import BulkImportError, ElasticsearchError

logger = logging.getLogger(__name__)


class ElasticsearchClient:
    """Client for the index and bulk APIs of a single Elasticsearch index."""

    def __init__(self, config: ElasticsearchConfig):
        """Initialize the client.

        Args:
            config: Elasticsearch section of the application configuration.
        """
        self.config = config
        self.index = config.index
        self.client = self._create_client()

    def _create_client(self) -> OpenSearch:
        """Create the HTTP client. Requests are never retried."""
        logger.debug(f"Connecting to Elasticsearch at {self.config.url}")

        http_auth = None
        if self.config.username and self.config.password:
            http_auth = (self.config.username, self.config.password)

        return OpenSearch(
            hosts=[{'host': self.config.host, 'port': self.config.port}],
            http_auth=http_auth,
            use_ssl=False,
            verify_certs=False,
            ssl_show_warn=False,
            timeout=self.config.timeout,
            max_retries=0,
            retry_on_timeout=False
        )

    def ping(self) -> bool:
        """Return True if the cluster answers."""
        return self.client.ping()

    def create_index(self, settings_file: Union[str, Path]) -> Dict[str, Any]:
        """Create the index with the settings payload from ``settings_file``."""
        body = _load_json(settings_file)
        logger.info(f"Creating index '{self.index}' from {settings_file}")
        try:
            response = self.client.indices.create(index=self.index, body=body)
        except TransportError as e:
            raise _http_error(f"Could not create Elasticsearch index '{self.index}'", e) from e
        logger.debug(f"Index {self.index} successfully created: {response}")
        return response

    def create_mapping(self, mappings_file: Union[str, Path]) -> Dict[str, Any]:
        """Put the field mappings from ``mappings_file`` on the index.

        The file may hold the mapping itself or wrap it in a ``mappings`` key.
        """
        body = _load_json(mappings_file)
        if isinstance(body, dict) and 'mappings' in body:
            body = body['mappings']
        logger.info(f"Creating mapping for '{self.index}' from {mappings_file}")
        try:
            response = self.client.indices.put_mapping(index=self.index, body=body)
        except TransportError as e:
            raise _http_error(f"Could not create Elasticsearch mapping for '{self.index}'", e) from e
        logger.debug(f"Mapping for {self.index} successfully created")
        return response

    def import_bulk(self, payload_file: Union[str, Path]) -> Dict[str, Any]:
        """Submit a newline-delimited bulk payload file to the index.

        Raises:
            ElasticsearchError: The request was rejected.
            BulkImportError: The request succeeded but some items failed.
        """
        try:
            payload = Path(payload_file).read_text(encoding='utf-8')
        except OSError as e:
            raise ElasticsearchError(f"Could not read bulk payload {payload_file}: {e}") from e

        logger.info(f"Importing bulk dataset into '{self.index}'")
        try:
            response = self.client.bulk(body=payload, index=self.index)
        except TransportError as e:
            raise _http_error(f"Could not import data into Elasticsearch for '{self.index}'", e) from e

        items = response.get('items', [])
        if response.get('errors'):
            failed = [item for item in items if any('error' in result for result in item.values())]
            for item in failed[:5]:
                logger.debug(f"Failed bulk item: {item}")
            raise BulkImportError(
                f"Bulk import into '{self.index}' failed for {len(failed)} of {len(items)} documents",
                failed=len(failed),
                body=response
            )

        logger.info(f"Successfully imported {len(items)} documents into {self.index}")
        return response


def _load_json(path: Union[str, Path]) -> Any:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ElasticsearchError(f"Could not read request body from {path}: {e}") from e


def _http_error(message: str, error: TransportError) -> ElasticsearchError:
    status = error.status_code
    info = error.info if error.info is not None else error.error
    logger.debug(f"{message}: status {status}, response {info}")
    return ElasticsearchError(f"{message}: status {status} ({info})", status=status, body=info)
