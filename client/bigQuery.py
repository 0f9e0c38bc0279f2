import pandas as pd
from google.oauth2 import service_account
from google.cloud import bigquery
from google.api_core import exceptions as google_exceptions
import logging
import gc
import concurrent.futures
import weakref
from contextlib import contextmanager
from typing import Any, Dict, Optional

from shared.errors import SystemOfRecordError


class Client:
    def __init__(self, credentials_json, project_id, client: Optional[bigquery.Client] = None,
                 timeout: float = 60.0):
        """
        Initialize the BigQuery API for the friendship system-of-record

        Args:
            credentials_json: Service account info dict
            project_id: GCP project holding the relational tables
            client: Pre-built bigquery.Client, skips credential handling
            timeout: Seconds to wait for a query result
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.logger.debug("Initializing BigQuery API")

        self.credentials_json = credentials_json
        self.project_id = project_id
        self.timeout = timeout
        self.client = client if client is not None else self._build_client()

        # Track active jobs for cleanup
        self._active_jobs = weakref.WeakSet()

    def _build_client(self):
        """Build and return the BigQuery client"""
        self.logger.debug("Building BigQuery client")

        credentials = service_account.Credentials.from_service_account_info(
            self.credentials_json,
            scopes=['https://www.googleapis.com/auth/bigquery']
        )

        client = bigquery.Client(project=self.project_id, credentials=credentials)
        self.logger.debug("BigQuery client built successfully")
        return client

    @contextmanager
    def _managed_query_job(self, query, job_config=None):
        """Context manager for query jobs with automatic cleanup"""
        job = None
        try:
            job = self.client.query(query, job_config=job_config)
            self._active_jobs.add(job)
            yield job
        finally:
            if job is not None and job.state in ('PENDING', 'RUNNING'):
                try:
                    job.cancel()
                except google_exceptions.GoogleAPIError as e:
                    self.logger.warning(f"Failed to cancel query job: {e}")
            job = None
            gc.collect()

    @staticmethod
    def _to_query_parameters(params: Dict[str, Any]):
        """Map python values onto BigQuery query parameters"""
        query_parameters = []
        for name, value in params.items():
            if isinstance(value, (list, tuple, set, frozenset)):
                values = sorted(value)
                query_parameters.append(bigquery.ArrayQueryParameter(name, "INT64", values))
            elif isinstance(value, bool):
                query_parameters.append(bigquery.ScalarQueryParameter(name, "BOOL", value))
            elif isinstance(value, int):
                query_parameters.append(bigquery.ScalarQueryParameter(name, "INT64", value))
            elif isinstance(value, float):
                query_parameters.append(bigquery.ScalarQueryParameter(name, "FLOAT64", value))
            elif isinstance(value, pd.Timestamp):
                query_parameters.append(bigquery.ScalarQueryParameter(name, "TIMESTAMP", value.to_pydatetime()))
            else:
                query_parameters.append(bigquery.ScalarQueryParameter(name, "STRING", value))
        return query_parameters

    def table(self, dataset_id: str, table_id: str) -> str:
        return f"`{self.project_id}.{dataset_id}.{table_id}`"

    def query(self, sql: str, params: Optional[Dict[str, Any]] = None) -> pd.DataFrame:
        """
        Execute a parameterized BigQuery SQL query and return results as DataFrame

        Args:
            sql: SQL query string using @name parameters
            params: Parameter values keyed by name

        Returns:
            DataFrame with query results

        Raises:
            SystemOfRecordError: if the query fails or times out
        """
        job_config = bigquery.QueryJobConfig(
            query_parameters=self._to_query_parameters(params or {}),
            use_query_cache=True
        )

        try:
            with self._managed_query_job(sql, job_config) as query_job:
                result_df = query_job.result(timeout=self.timeout).to_dataframe()
                self.logger.debug(f"Query returned {len(result_df)} rows")
                return result_df.copy()
        except (google_exceptions.GoogleAPIError, concurrent.futures.TimeoutError, TimeoutError) as e:
            self.logger.error(f"Query execution failed: {e}")
            raise SystemOfRecordError(f"BigQuery query failed: {e}") from e

    def get_last_processed_timestamp(self, dataset_id: str, table_id: str, key: str) -> pd.Timestamp:
        """
        Get the last processed timestamp stored under key

        Returns:
            Last processed timestamp or epoch if not found
        """
        query = f"""
        SELECT timestamp
        FROM {self.table(dataset_id, table_id)}
        WHERE key = @key
        ORDER BY updated_at DESC
        LIMIT 1
        """

        result = self.query(query, {'key': key})

        if len(result) > 0:
            timestamp = pd.to_datetime(result.iloc[0]['timestamp'], utc=True)
            self.logger.info(f"Retrieved last processed timestamp for {key}: {timestamp}")
            return timestamp

        epoch = pd.Timestamp('1970-01-01', tz='UTC')
        self.logger.info(f"No timestamp found for {key}, returning epoch")
        return epoch

    def update_last_processed_timestamp(self, dataset_id: str, table_id: str, key: str,
                                        timestamp: pd.Timestamp) -> None:
        """Upsert the last processed timestamp stored under key"""
        merge_query = f"""
        MERGE {self.table(dataset_id, table_id)} T
        USING (SELECT @key AS key, @new_timestamp AS timestamp) S
        ON T.key = S.key
        WHEN MATCHED THEN
            UPDATE SET timestamp = S.timestamp, updated_at = CURRENT_TIMESTAMP()
        WHEN NOT MATCHED THEN
            INSERT (key, timestamp, updated_at) VALUES (S.key, S.timestamp, CURRENT_TIMESTAMP())
        """

        self.query(merge_query, {'key': key, 'new_timestamp': pd.Timestamp(timestamp)})
        self.logger.info(f"Updated last processed timestamp for {key} to: {timestamp}")
