"""Store clients — hand a batch file to the remote analytical store."""

import abc
import logging

from azure.kusto.data import KustoConnectionStringBuilder
from azure.kusto.data.data_format import DataFormat, IngestionMappingKind
from azure.kusto.ingest import IngestionProperties, QueuedIngestClient

from syslog_shipper.config import ConfigError, DeliveryConfig
from syslog_shipper.models import RecordFormat

logger = logging.getLogger(__name__)


class IngestClient(abc.ABC):
    """Submits one batch file to a table of the remote store."""

    @abc.abstractmethod
    def submit(self, file_path: str, table: str, mapping: str, data_format: RecordFormat):
        """Submit *file_path*; raise on any failure."""

    def close(self):
        pass


def ingest_url(cluster_name: str) -> str:
    """Build the data-management endpoint for *cluster_name* (a name or a full URL)."""
    if cluster_name.startswith("https://"):
        return cluster_name
    return f"https://ingest-{cluster_name}.kusto.windows.net"


class KustoIngestClient(IngestClient):
    """Queued ingestion into Azure Data Explorer using AAD application-key auth."""

    def __init__(self, config: DeliveryConfig):
        missing = [
            name for name in ("cluster_name", "database", "tenant_id", "client_id", "client_secret")
            if not getattr(config, name)
        ]
        if missing:
            raise ConfigError(f"Missing Kusto settings: {', '.join('delivery.' + m for m in missing)}")

        self._database = config.database
        url = ingest_url(config.cluster_name)
        kcsb = KustoConnectionStringBuilder.with_aad_application_key_authentication(
            url, config.client_id, config.client_secret, config.tenant_id,
        )
        self._client = QueuedIngestClient(kcsb)
        logger.info("Kusto ingest client ready for %s (database %s)", url, self._database)

    def ingestion_properties(self, table: str, mapping: str,
                             data_format: RecordFormat) -> IngestionProperties:
        if data_format is RecordFormat.JSON:
            return IngestionProperties(
                database=self._database,
                table=table,
                data_format=DataFormat.MULTIJSON,
                ingestion_mapping_reference=mapping or None,
                ingestion_mapping_kind=IngestionMappingKind.JSON if mapping else None,
            )
        # Plain text lands one line per row in the table's single string column.
        return IngestionProperties(
            database=self._database,
            table=table,
            data_format=DataFormat.TXT,
        )

    def submit(self, file_path: str, table: str, mapping: str, data_format: RecordFormat):
        props = self.ingestion_properties(table, mapping, data_format)
        self._client.ingest_from_file(file_path, ingestion_properties=props)

    def close(self):
        self._client.close()
