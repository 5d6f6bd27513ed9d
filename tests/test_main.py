"""
Tests for the command line pipeline.
"""
import json
import logging
import os
import signal
import subprocess
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from esimport.core.exceptions import BulkImportError, ContainerError
from esimport.main import create_argument_parser, main

SRC = Path(__file__).resolve().parents[1] / "src"

RC = """\
ES_PORT=9200
ES_IMAGE=elasticsearch:7.10.1
ES_NAME=es-test
ES_INDEX=starwars
"""

RECORDS = [
    {"name": "Luke Skywalker", "portrayal": "Mark Hamill", "description": "Jedi"},
    {"name": "Leia Organa", "portrayal": "Carrie Fisher", "description": "Princess"},
]


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger('esimport')
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "esimport.rc").write_text(RC)
    (tmp_path / "settings.json").write_text('{"settings": {"number_of_shards": 1}}')
    (tmp_path / "mappings.json").write_text('{"properties": {"name": {"type": "text"}}}')
    (tmp_path / "characters.json").write_text(json.dumps(RECORDS))
    return tmp_path


@pytest.fixture
def services():
    with patch('esimport.main.DockerManager') as docker_cls, \
            patch('esimport.main.ElasticsearchClient') as es_cls, \
            patch('esimport.main.check_environment', return_value=[]), \
            patch('esimport.core.utils.shutil.which', return_value='/usr/bin/docker'):
        yield docker_cls.return_value, es_cls.return_value


def run(workspace, *extra):
    return main([
        '-q',
        '--log-dir', str(workspace / "logs"),
        '-c', str(workspace / "esimport.rc"),
        '-s', str(workspace / "settings.json"),
        '-m', str(workspace / "mappings.json"),
        '-i', str(workspace / "characters.json"),
        *extra
    ])


class TestArguments:
    """Test command line parsing."""

    def test_defaults(self):
        args = create_argument_parser().parse_args([])
        assert args.config == "esimport.rc"
        assert args.settings is None
        assert not args.verbose
        assert not args.quiet

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(['-v'])
        assert exc.value.code == 0
        assert "esimport-" in capsys.readouterr().out


class TestPipeline:
    """Test the pipeline stages end to end with mocked services."""

    def test_success(self, workspace, services):
        docker, es = services
        seen = {}

        def import_bulk(path):
            seen['path'] = Path(path)
            seen['lines'] = Path(path).read_text(encoding='utf-8').splitlines()

        es.import_bulk.side_effect = import_bulk

        assert run(workspace) == 0

        docker.restart.assert_called_once()
        es.create_index.assert_called_once_with(str(workspace / "settings.json"))
        es.create_mapping.assert_called_once_with(str(workspace / "mappings.json"))
        assert len(seen['lines']) == 2 * len(RECORDS)
        assert json.loads(seen['lines'][1]) == RECORDS[0]
        assert not seen['path'].exists()

    def test_missing_variable(self, workspace, services, caplog):
        docker, es = services
        (workspace / "esimport.rc").write_text(RC.replace("ES_IMAGE=elasticsearch:7.10.1\n", ""))

        with caplog.at_level(logging.ERROR, logger='esimport'):
            assert run(workspace) == 1

        assert any("$ES_IMAGE" in record.getMessage() for record in caplog.records)
        docker.restart.assert_not_called()
        es.create_index.assert_not_called()

    def test_missing_config_file(self, workspace, services):
        assert main(['-q', '--log-dir', str(workspace), '-c', str(workspace / "absent.rc")]) == 1

    def test_missing_tool(self, workspace, services, caplog):
        docker, es = services

        with patch('esimport.core.utils.shutil.which', return_value=None):
            with caplog.at_level(logging.ERROR, logger='esimport'):
                assert run(workspace) == 1

        assert any("docker not found" in record.getMessage() for record in caplog.records)
        docker.restart.assert_not_called()
        es.ping.assert_not_called()
        es.create_index.assert_not_called()
        es.import_bulk.assert_not_called()

    def test_container_failure(self, workspace, services, caplog):
        docker, es = services
        docker.restart.side_effect = ContainerError("Could not restart docker 'es-test'")

        with caplog.at_level(logging.ERROR, logger='esimport'):
            assert run(workspace) == 1

        messages = [record.getMessage() for record in caplog.records]
        assert "Could not start Elasticsearch. Aborting" in messages
        es.create_index.assert_not_called()

    def test_import_failure_removes_bulk_file(self, workspace, services):
        docker, es = services
        seen = {}

        def import_bulk(path):
            seen['path'] = Path(path)
            raise BulkImportError("Bulk import into 'starwars' failed for 1 of 2 documents", failed=1)

        es.import_bulk.side_effect = import_bulk

        assert run(workspace) == 1
        assert seen['path'].exists() is False

    def test_invalid_input_file(self, workspace, services):
        docker, es = services
        (workspace / "characters.json").write_text('{"not": "an array"}')

        assert run(workspace) == 1
        es.import_bulk.assert_not_called()

    def test_skip_stages(self, workspace, services):
        docker, es = services

        assert run(workspace, '--skip-index', '--skip-import') == 0

        docker.restart.assert_called_once()
        es.create_index.assert_not_called()
        es.import_bulk.assert_not_called()

    def test_fetch_dataset(self, workspace, services):
        with patch('esimport.main.WikipediaDatasetClient') as dataset_cls:
            assert run(workspace, '--fetch-dataset', '--skip-index') == 0

        dataset_cls.return_value.generate_dataset.assert_called_once_with(
            "https://en.wikipedia.org/wiki/List_of_Star_Wars_characters",
            str(workspace / "characters.json")
        )

    def test_unresponsive_cluster_is_a_warning(self, workspace, services, caplog):
        docker, es = services
        es.ping.return_value = False

        with caplog.at_level(logging.WARNING, logger='esimport'):
            assert run(workspace, '--skip-import') == 0

        assert any("not answering" in record.getMessage() for record in caplog.records)

    def test_writes_log_file(self, workspace, services):
        run(workspace)

        logs = list((workspace / "logs").glob("esimport-*.log"))
        assert len(logs) == 1
        assert "Import completed successfully" in logs[0].read_text()

    def test_dataset_timeout(self, workspace, services):
        (workspace / "esimport.rc").write_text(RC + "ES_TIMEOUT=60\nDATASET_TIMEOUT=5\n")

        with patch('esimport.main.WikipediaDatasetClient') as dataset_cls:
            assert run(workspace, '--fetch-dataset', '--skip-index', '--skip-import') == 0

        dataset_cls.assert_called_once_with(timeout=5)


TERMINATED_IMPORT = """\
import sys
import time

from esimport.bulk.payload import BulkFile
from esimport.main import install_signal_handlers

install_signal_handlers()
with BulkFile(directory=sys.argv[1]) as bulk_file:
    print(bulk_file.path, flush=True)
    time.sleep(30)
"""


class TestSignals:
    """Test that termination signals still clean up."""

    def test_sigterm_handler_is_restored(self, workspace, services):
        before = signal.getsignal(signal.SIGTERM)

        assert run(workspace) == 0

        assert signal.getsignal(signal.SIGTERM) is before

    @pytest.mark.skipif(sys.platform == "win32", reason="SIGTERM cannot be caught on Windows")
    def test_sigterm_during_import(self, workspace, services, caplog):
        docker, es = services
        seen = {}

        def import_bulk(path):
            seen['path'] = Path(path)
            os.kill(os.getpid(), signal.SIGTERM)

        es.import_bulk.side_effect = import_bulk

        with caplog.at_level(logging.ERROR, logger='esimport'):
            assert run(workspace) == 1

        assert "Terminated. Aborting" in [record.getMessage() for record in caplog.records]
        assert not seen['path'].exists()

    @pytest.mark.skipif(sys.platform == "win32", reason="SIGTERM cannot be caught on Windows")
    def test_sigterm_removes_bulk_file(self, tmp_path):
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC), env.get("PYTHONPATH")]))
        proc = subprocess.Popen(
            [sys.executable, "-c", TERMINATED_IMPORT, str(tmp_path)],
            stdout=subprocess.PIPE,
            text=True,
            env=env
        )
        try:
            path = Path(proc.stdout.readline().strip())
            assert path.exists()

            proc.send_signal(signal.SIGTERM)
            proc.wait(timeout=10)
        finally:
            if proc.poll() is None:
                proc.kill()
            proc.stdout.close()

        assert proc.returncode == 1
        assert not path.exists()
        assert list(tmp_path.iterdir()) == []
