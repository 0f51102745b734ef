from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.reconciliation import MismatchCandidate, MissingCandidate, PipelineStatus


class DBClientInterface(ClientInterface):
    """Adapter contract for the relational system of record.

    Every read is scoped to one partition and only looks at documents that are
    the current version and not soft-deleted. The only write is
    do_set_pipeline_status(), used by repair to hand a document back to the
    indexing pipeline.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_client_type(self) -> str:
        return "db"

    def _get_default_timeout(self) -> float:
        return 60.0

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_document_count(self, partition: str) -> int:
        """Count the current, non-deleted, indexed documents of a partition."""
        pass

    @abstractmethod
    async def do_chunk_ref_count(self, partition: str) -> int:
        """Count the chunks of current, non-deleted, indexed documents that reference a point."""
        pass

    @abstractmethod
    async def do_missing_candidates(self, partition: str, limit: int) -> list[MissingCandidate]:
        """
        Lists indexed documents that have chunks but no chunk with a point reference.

        Args:
            partition (str): Partition key.
            limit (int): Maximum number of rows.
        """
        pass

    @abstractmethod
    async def do_mismatch_candidates(self, partition: str, limit: int) -> list[MismatchCandidate]:
        """
        Lists indexed documents whose referenced chunk count differs from their chunk total,
        together with the point ids their chunks record.

        Args:
            partition (str): Partition key.
            limit (int): Maximum number of rows.
        """
        pass

    @abstractmethod
    async def do_existing_document_ids(self, partition: str, document_ids: list[str]) -> set[str]:
        """
        Returns the subset of the given ids, exactly as given, that are current, non-deleted documents of the partition.

        Ids that are not valid document ids are treated as absent.
        """
        pass

    @abstractmethod
    async def do_set_pipeline_status(self, document_id: str, status: PipelineStatus, error: str | None = None) -> None:
        """
        Sets the pipeline status and error of a document. Setting the same
        values twice is a no-op; a document that no longer exists is ignored.
        """
        pass
