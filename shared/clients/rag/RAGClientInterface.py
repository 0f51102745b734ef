from abc import abstractmethod
import json

from shared.clients.HTTPClientInterface import HTTPClientInterface
from shared.clients.rag.models.Scroll import ScrollResult
from shared.helper.HelperConfig import HelperConfig


class RAGClientInterface(HTTPClientInterface):
    """Adapter contract for the vector index.

    Only the read operations used by health check and drift detection and the
    single write used by repair (delete by filter) are exposed. The
    reconciliation core never creates points.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "rag"

    @abstractmethod
    def get_collection(self) -> str:
        """Returns the name of the collection holding the document chunk points."""
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_scroll(self) -> str:
        """
        Returns the endpoint path for scroll requests.

        Raises:
            NotImplementedError: If the method is not implemented in a subclass.
        """
        pass

    @abstractmethod
    def _get_endpoint_retrieve(self) -> str:
        """
        Returns the endpoint path for retrieving points by id.

        Raises:
            NotImplementedError: If the method is not implemented in a subclass.
        """
        pass

    @abstractmethod
    def _get_endpoint_delete_points(self) -> str:
        """
        Returns the endpoint path for deleting points by filter.

        Raises:
            NotImplementedError: If the method is not implemented in a subclass.
        """
        pass

    @abstractmethod
    def _get_endpoint_check_collection_existence(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_count(self) -> str:
        """Returns the endpoint path for counting points matching a filter."""
        pass

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    @abstractmethod
    def build_match_condition(self, key: str, value: str) -> dict:
        """Builds a single "payload field equals value" condition.

        Args:
            key (str): Payload field name (e.g. "db", "document_id").
            value (str): Exact value to match.

        Returns:
            dict: The backend-specific condition.
        """
        pass

    @abstractmethod
    def build_filter(self, conditions: list[dict]) -> dict:
        """Combines conditions into a filter that requires all of them."""
        pass

    @abstractmethod
    def get_scroll_payload(self, filters: list[dict], with_payload: bool | list, with_vector: bool, limit: int | None = None, offset: str | int | None = None) -> dict:
        """
        Returns the payload for scroll requests.

        Args:
            filters (list[dict]): The conditions every returned point must match.
            with_payload (bool | list): Whether to include the payload, or which payload fields to include.
            with_vector (bool): Whether to include the vector.
            limit (int | None): The page size.
            offset (str | int | None): Cursor returned by the previous page. None starts from the beginning.
        """
        pass

    @abstractmethod
    def get_retrieve_payload(self, ids: list[str]) -> dict:
        """Returns the payload for an id-only existence lookup of the given points."""
        pass

    @abstractmethod
    def get_count_payload(self, filters: list[dict]) -> dict:
        pass

    @abstractmethod
    def get_delete_payload(self, filter: dict) -> dict:
        pass

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    @abstractmethod
    def extract_scroll_content(self, raw_response: dict) -> list[dict]:
        """Extracts the list of points from a raw scroll response."""
        pass

    @abstractmethod
    def extract_next_page_offset(self, raw_response: dict) -> str | int | None:
        """
        Extracts the pagination cursor for the next scroll page from a raw response.

        Returns:
            str | int | None: The cursor for the next page, or None if this was the last page.
        """
        pass

    @abstractmethod
    def extract_retrieved_ids(self, raw_response: dict) -> list[str]:
        """Extracts the ids of the points that exist from a raw retrieve response."""
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _post_json(self, endpoint: str, payload: dict, params: dict | None = None) -> dict:
        resp = await self.do_request(
            method="POST",
            content=json.dumps(payload),
            params=params,
            endpoint=endpoint,
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
        return resp.json()

    async def do_existence_check(self) -> bool:
        """Check if the configured collection exists in the rag backend."""
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_check_collection_existence(), raise_on_error=True)
        return bool(resp.json().get("result", {}).get("exists"))

    async def do_count(self, filters: list[dict]) -> int:
        """Count the points matching all given conditions.

        Args:
            filters (list[dict]): Conditions built with build_match_condition().

        Returns:
            int: Exact number of matching points.
        """
        raw = await self._post_json(self._get_endpoint_count(), self.get_count_payload(filters))
        return int(raw.get("result", {}).get("count", 0))

    async def do_retrieve(self, ids: list[str]) -> list[str]:
        """Return the subset of the given point ids that exist in the collection.

        Args:
            ids (list[str]): Point ids to look up. An empty list issues no request.

        Returns:
            list[str]: Ids of the points that exist.
        """
        if not ids:
            return []
        raw = await self._post_json(self._get_endpoint_retrieve(), self.get_retrieve_payload(ids))
        return self.extract_retrieved_ids(raw)

    async def do_scroll(self, filters: list[dict], with_payload: bool | list, with_vector: bool, limit: int | None = None, offset: str | int | None = None) -> ScrollResult:
        """Scroll a single page of points matching the filter.

        Args:
            filters (list[dict]): Conditions every point must match.
            with_payload (bool | list): Whether to include the payload, or which fields.
            with_vector (bool): Whether to include the vector.
            limit (int | None): Page size.
            offset (str | int | None): Cursor from the previous page's next_page_offset.

        Returns:
            ScrollResult: The page, with next_page_offset set when more pages exist.
        """
        raw = await self._post_json(
            self._get_endpoint_scroll(),
            self.get_scroll_payload(filters, with_payload, with_vector, limit, offset),
        )
        return ScrollResult(
            result=self.extract_scroll_content(raw),
            status=raw.get("status", "ok"),
            time=raw.get("time", 0),
            next_page_offset=self.extract_next_page_offset(raw),
        )

    async def do_delete_points_by_filter(self, filter: dict) -> None:
        """Delete all points matching the filter and wait until the delete is applied.

        Deleting with a filter that matches nothing is a successful no-op.

        Args:
            filter (dict): Filter built with build_filter().
        """
        await self._post_json(self._get_endpoint_delete_points(), self.get_delete_payload(filter), params={"wait": "true"})
