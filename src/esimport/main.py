#!/usr/bin/env python3
"""
Main entry point for esimport: start Elasticsearch in a container, create the
index and its mapping, then bulk import a JSON array of documents.
"""
import argparse
import logging
import signal
import sys
from typing import Callable, List, Optional

from esimport import __version__
from esimport.bulk.payload import BulkFile
from esimport.container.docker_manager import DockerManager
from esimport.core.config import (APPLICATION, DEFAULT_CONFIG_FILE, AppConfig,
                                  LoggingConfig, config_manager, load_config)
from esimport.core.exceptions import ConfigurationError, EsImportError
from esimport.core.utils import check_environment, check_requirements, setup_logging
from esimport.dataset.wikipedia import WikipediaDatasetClient
from esimport.storage.elasticsearch_client import ElasticsearchClient


class ImportPipeline:
    """Runs the provisioning stages in order, aborting on the first failure."""

    def __init__(self, config: AppConfig, create_index: bool = True,
                 fetch_dataset: bool = False, import_data: bool = True,
                 show_progress: bool = True):
        self.config = config
        self.create_index = create_index
        self.fetch_dataset = fetch_dataset
        self.import_data = import_data
        self.show_progress = show_progress
        self.logger = logging.getLogger(f'{APPLICATION}.pipeline')
        self.docker = DockerManager(config.container, port=config.elasticsearch.port)
        self.es = ElasticsearchClient(config.elasticsearch)

    def run(self) -> None:
        """Run every enabled stage.

        Raises:
            EsImportError: from the first stage that fails, after logging it.
        """
        self._run_stage("Invalid requirements", check_requirements)
        check_environment()
        self._run_stage("Could not start Elasticsearch", self.start_elasticsearch)

        if self.create_index:
            self._run_stage("Could not create Elasticsearch index",
                            self.es.create_index, self.config.data.settings_file)
            self._run_stage("Could not create Elasticsearch mapping",
                            self.es.create_mapping, self.config.data.mappings_file)

        if self.fetch_dataset:
            self._run_stage("Could not generate input file", self.generate_dataset)

        if self.import_data:
            with BulkFile() as bulk_file:
                self._run_stage("Could not generate input file", bulk_file.generate,
                                self.config.data.input_file,
                                self.config.elasticsearch.index,
                                self.config.elasticsearch.doc_type,
                                self.show_progress)
                self._run_stage("Could not import data", self.es.import_bulk, bulk_file.path)

    def start_elasticsearch(self) -> None:
        self.docker.restart()
        if not self.es.ping():
            self.logger.warning(
                f"Elasticsearch at {self.config.elasticsearch.url} is not answering yet"
            )

    def generate_dataset(self) -> int:
        client = WikipediaDatasetClient(timeout=self.config.data.dataset_timeout)
        return client.generate_dataset(self.config.data.dataset_url, self.config.data.input_file)

    def _run_stage(self, failure: str, stage: Callable, *args):
        try:
            return stage(*args)
        except EsImportError as e:
            self.logger.error(str(e))
            self.logger.error(f"{failure}. Aborting")
            raise


def _terminate(signum, frame):
    raise SystemExit(1)


def install_signal_handlers():
    """Turn SIGTERM into SystemExit so open ``with`` blocks and atexit hooks run.

    Returns:
        The previous SIGTERM handler.
    """
    return signal.signal(signal.SIGTERM, _terminate)


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog=APPLICATION,
        description='Start Elasticsearch in docker and import data into it'
    )
    parser.add_argument(
        '-c', '--config',
        type=str,
        default=DEFAULT_CONFIG_FILE,
        help='Config file'
    )
    parser.add_argument(
        '-s', '--settings',
        type=str,
        help='Settings file (index settings payload)'
    )
    parser.add_argument(
        '-m', '--mappings',
        type=str,
        help='Mappings file (index mappings payload)'
    )
    parser.add_argument(
        '-i', '--input',
        type=str,
        help='JSON array of documents to import'
    )
    parser.add_argument(
        '-v', '--version',
        action='version',
        version=f'{APPLICATION}-{__version__}',
        help='Displays version information'
    )
    parser.add_argument(
        '-V', '--verbose',
        action='store_true',
        help='Verbose'
    )
    parser.add_argument(
        '-q', '--quiet',
        action='store_true',
        help="Quiet, doesn't display to stdout or stderr"
    )
    parser.add_argument(
        '--log-dir',
        type=str,
        default='.',
        help='Directory of the daily log file'
    )
    parser.add_argument(
        '--fetch-dataset',
        action='store_true',
        help='Download the dataset into the input file before importing'
    )
    parser.add_argument(
        '--skip-index',
        action='store_true',
        help='Do not create the index and its mapping'
    )
    parser.add_argument(
        '--skip-import',
        action='store_true',
        help='Do not import data'
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    logger = setup_logging(LoggingConfig(
        verbose=args.verbose,
        quiet=args.quiet,
        directory=args.log_dir
    ))

    try:
        config_manager.reset()
        config = load_config(args.config, overrides={
            'SETTINGS_FILE': args.settings,
            'MAPPINGS_FILE': args.mappings,
            'INPUT_FILE': args.input,
        })
    except ConfigurationError as e:
        logger.error(str(e))
        logger.error("Invalid arguments. Aborting")
        if not args.quiet:
            parser.print_usage(sys.stderr)
        return 1

    previous_handler = install_signal_handlers()
    try:
        pipeline = ImportPipeline(
            config,
            create_index=not args.skip_index,
            fetch_dataset=args.fetch_dataset,
            import_data=not args.skip_import,
            show_progress=not args.quiet
        )
        pipeline.run()
    except EsImportError:
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted by user. Aborting")
        return 1
    except SystemExit:
        logger.error("Terminated. Aborting")
        return 1
    except Exception as e:
        logger.error(f"Application error: {e}", exc_info=True)
        return 1
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGTERM, previous_handler)

    logger.info("Import completed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
