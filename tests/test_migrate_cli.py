"""Tests for the command-line entry point."""

import argparse
import json
from unittest.mock import patch

import pytest
import yaml

import migrate


class StubClient:
    api_root = 'https://example.atlassian.net/wiki'

    def __init__(self):
        self.requested = []

    def get_space(self, space_key):
        self.requested.append(space_key)
        return {'key': space_key, 'name': 'Engineering'}

    def fetch_json(self, path_or_url, params=None):
        body = json.dumps({'type': 'doc', 'content': [{'type': 'paragraph', 'content': [{'type': 'text', 'text': 'Hi'}]}]})
        return {
            'results': [{
                'id': '1',
                'title': 'Welcome',
                'space': {'key': 'ENG'},
                'body': {'atlas_doc_format': {'value': body}},
            }],
            '_links': {},
        }


@pytest.fixture
def config_path(tmp_path):
    config = {
        'confluence': {
            'base_url': 'https://example.atlassian.net',
            'username': 'user@example.com',
            'api_token': 'secret',
        },
        'spaces': [{'key': 'ENG'}],
        'export': {'output_directory': str(tmp_path / 'out')},
    }
    path = tmp_path / 'config.yaml'
    path.write_text(yaml.safe_dump(config), encoding='utf-8')
    return path


class TestArgumentTypes:
    def test_parse_space_keys(self):
        assert migrate.parse_space_keys(' ENG, HR ,,') == ['ENG', 'HR']

    def test_parse_space_keys_empty(self):
        with pytest.raises(argparse.ArgumentTypeError):
            migrate.parse_space_keys(' , ')

    @pytest.mark.parametrize('value', ['0', '-5', 'ten'])
    def test_positive_int_rejects(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            migrate.positive_int(value)

    def test_parser_defaults(self):
        args = migrate.create_argument_parser().parse_args([])
        assert args.config == 'config.yaml'
        assert args.check_connection is True
        assert args.progress is True
        assert args.verbose == 0


class TestMain:
    def test_missing_config(self, tmp_path):
        assert migrate.main(['--config', str(tmp_path / 'missing.yaml')]) == 2

    def test_invalid_config(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text(yaml.safe_dump({'confluence': {'base_url': 'https://example.com'}}), encoding='utf-8')
        assert migrate.main(['--config', str(path)]) == 2

    def test_successful_run(self, tmp_path, config_path):
        client = StubClient()
        report_path = tmp_path / 'report.json'

        with patch.object(migrate.ConfluenceClient, 'from_config', return_value=client):
            exit_code = migrate.main([
                '--config', str(config_path),
                '--no-progress',
                '--report-path', str(report_path),
            ])

        assert exit_code == 0
        assert client.requested == ['ENG']
        assert (tmp_path / 'out' / 'ENG' / 'welcome.md').read_text(encoding='utf-8').endswith('Hi\n')
        assert json.loads(report_path.read_text(encoding='utf-8'))['summary']['pages_written'] == 1

    def test_connectivity_failure(self, config_path):
        client = StubClient()

        def refuse(space_key):
            raise migrate.requests.exceptions.ConnectionError("refused")

        client.get_space = refuse
        with patch.object(migrate.ConfluenceClient, 'from_config', return_value=client):
            assert migrate.main(['--config', str(config_path), '--no-progress']) == 1
