#!/usr/bin/env python3
"""
Unit tests for configuration loading and validation
"""

import unittest
from unittest.mock import patch
import json
import os
import sys
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from config import (
    DEFAULT_MAX_WORKERS,
    DEFAULT_WEEKS_BACK,
    ConfigurationError,
    PipelineDefinition,
    config_from_dict,
    load_cycle_time_config,
    require_tokens,
    validate_configuration,
)


def valid_config_data(**overrides):
    data = {
        'repos': ['org/app', 'org/api'],
        'pipelines': [
            {'name': 'In Progress', 'id': 'progress'},
            {'name': 'Review', 'id': 'review'},
        ],
        'endPipeline': 'Done',
        'excludeLabels': ['wontfix'],
        'debug': False,
        'printIssueDetails': True,
    }
    data.update(overrides)
    return data


class TestConfigFromDict(unittest.TestCase):
    """Test building the explicit configuration value"""

    def test_valid_configuration(self):
        with patch.dict(os.environ, {'GITHUB_TOKEN': 'gh-env', 'ZENHUB_TOKEN': 'zh-env'}):
            config = config_from_dict(valid_config_data())

        self.assertEqual(config.repos, ('org/app', 'org/api'))
        self.assertEqual(config.pipelines[0], PipelineDefinition(name='In Progress', id='progress'))
        self.assertEqual(config.end_pipeline, 'Done')
        self.assertEqual(config.exclude_labels, ('wontfix',))
        self.assertTrue(config.print_issue_details)
        self.assertEqual(config.weeks_back, DEFAULT_WEEKS_BACK)
        self.assertEqual(config.max_workers, DEFAULT_MAX_WORKERS)
        self.assertEqual(config.github_token, 'gh-env')
        self.assertEqual(config.zenhub_token, 'zh-env')

    def test_tokens_in_file_take_precedence(self):
        with patch.dict(os.environ, {'GITHUB_TOKEN': 'gh-env'}):
            config = config_from_dict(valid_config_data(gitHubToken='gh-file', zenHubToken='zh-file'))

        self.assertEqual(config.github_token, 'gh-file')
        self.assertEqual(config.zenhub_token, 'zh-file')

    def test_pipeline_ids_are_strings(self):
        config = config_from_dict(valid_config_data(pipelines=[{'name': 'In Progress', 'id': 12345}]))

        self.assertEqual(config.pipelines[0].id, '12345')

    def test_invalid_configurations(self):
        invalid = [
            [],
            valid_config_data(repos=[]),
            valid_config_data(repos=['no-owner']),
            valid_config_data(pipelines=[]),
            valid_config_data(pipelines=[{'name': 'In Progress'}]),
            valid_config_data(pipelines=[{'id': 'progress'}]),
            valid_config_data(excludeLabels='wontfix'),
            valid_config_data(endPipeline=7),
            valid_config_data(weeksBack=0),
            valid_config_data(maxWorkers='8'),
        ]
        for data in invalid:
            with self.subTest(data=data):
                with self.assertRaises(ConfigurationError):
                    config_from_dict(data)


class TestLoadConfigFile(unittest.TestCase):
    """Test reading cycleTimeConfig.json"""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.temp_dir.name, 'cycleTimeConfig.json')

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_load_file(self):
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(valid_config_data(weeksBack=2), f)

        config = load_cycle_time_config(self.path)

        self.assertEqual(config.weeks_back, 2)

    def test_missing_file(self):
        with self.assertRaises(ConfigurationError) as context:
            load_cycle_time_config(self.path)
        self.assertIn('not found', str(context.exception))

    def test_invalid_json(self):
        with open(self.path, 'w', encoding='utf-8') as f:
            f.write('{"repos": [')

        with self.assertRaises(ConfigurationError):
            load_cycle_time_config(self.path)


class TestValidation(unittest.TestCase):
    """Test configuration status reporting"""

    def test_missing_tokens_are_reported(self):
        with patch.dict(os.environ, {}, clear=True):
            config = config_from_dict(valid_config_data(endPipeline=None))

        status = validate_configuration(config)

        self.assertFalse(status['github_token'])
        self.assertFalse(status['zenhub_token'])
        self.assertEqual(len(status['issues']), 3)
        with self.assertRaises(ConfigurationError) as context:
            require_tokens(config)
        self.assertIn('GITHUB_TOKEN', str(context.exception))
        self.assertIn('ZENHUB_TOKEN', str(context.exception))

    def test_complete_configuration(self):
        config = config_from_dict(valid_config_data(gitHubToken='gh', zenHubToken='zh'))

        self.assertEqual(validate_configuration(config)['issues'], [])
        require_tokens(config)


if __name__ == '__main__':
    unittest.main()
