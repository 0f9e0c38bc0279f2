"""Tests for the BigQuery system-of-record client with a mocked bigquery.Client."""

import concurrent.futures
from unittest.mock import Mock

import pandas as pd
import pytest
from google.api_core import exceptions as google_exceptions
from google.cloud import bigquery

from client.bigQuery import Client as BigQueryClient
from shared.errors import SystemOfRecordError


def finished_job(frame):
    job = Mock()
    job.state = 'DONE'
    job.result.return_value.to_dataframe.return_value = frame
    return job


@pytest.fixture
def bq():
    return Mock()


@pytest.fixture
def client(bq):
    return BigQueryClient({}, 'test-project', client=bq, timeout=5.0)


class TestQuery:
    def test_returns_dataframe(self, client, bq):
        bq.query.return_value = finished_job(pd.DataFrame({'member_id': [1, 2]}))

        result = client.query("SELECT member_id FROM t")

        assert list(result['member_id']) == [1, 2]
        bq.query.return_value.result.assert_called_once_with(timeout=5.0)

    def test_api_error_wrapped(self, client, bq):
        bq.query.side_effect = google_exceptions.BadRequest("syntax error")

        with pytest.raises(SystemOfRecordError):
            client.query("SELECT")

    def test_timeout_wrapped_and_job_cancelled(self, client, bq):
        job = Mock()
        job.state = 'RUNNING'
        job.result.side_effect = TimeoutError("deadline exceeded")
        bq.query.return_value = job

        with pytest.raises(SystemOfRecordError):
            client.query("SELECT")

        job.cancel.assert_called_once()

    def test_result_timeout_wrapped(self, client, bq):
        job = Mock()
        job.state = 'RUNNING'
        job.result.side_effect = concurrent.futures.TimeoutError()
        bq.query.return_value = job

        with pytest.raises(SystemOfRecordError):
            client.query("SELECT")

        job.cancel.assert_called_once()

    def test_parameters_mapped(self, client, bq):
        bq.query.return_value = finished_job(pd.DataFrame())
        since = pd.Timestamp('2024-06-01', tz='UTC')

        client.query("SELECT", {'member_ids': {3, 1}, 'member_id': 7, 'since': since, 'key': 'k'})

        job_config = bq.query.call_args.kwargs['job_config']
        parameters = {parameter.name: parameter for parameter in job_config.query_parameters}
        assert isinstance(parameters['member_ids'], bigquery.ArrayQueryParameter)
        assert parameters['member_ids'].values == [1, 3]
        assert parameters['member_id'].type_ == 'INT64'
        assert parameters['since'].type_ == 'TIMESTAMP'
        assert parameters['key'].type_ == 'STRING'

    def test_table_name(self, client):
        assert client.table('data', 'friendships') == "`test-project.data.friendships`"


class TestTimestamps:
    def test_epoch_when_missing(self, client, bq):
        bq.query.return_value = finished_job(pd.DataFrame(columns=['timestamp']))

        assert client.get_last_processed_timestamp('etl_state', 'etl_timestamps', 'k') == pd.Timestamp(
            '1970-01-01', tz='UTC'
        )

    def test_stored_value(self, client, bq):
        stored = pd.Timestamp('2024-06-01 03:00', tz='UTC')
        bq.query.return_value = finished_job(pd.DataFrame({'timestamp': [stored]}))

        assert client.get_last_processed_timestamp('etl_state', 'etl_timestamps', 'k') == stored

    def test_update_runs_merge(self, client, bq):
        bq.query.return_value = finished_job(pd.DataFrame())

        client.update_last_processed_timestamp('etl_state', 'etl_timestamps', 'k', pd.Timestamp('2024-06-01', tz='UTC'))

        assert 'MERGE' in bq.query.call_args.args[0]
