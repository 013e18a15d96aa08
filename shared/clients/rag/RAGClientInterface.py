from abc import abstractmethod
from typing import Any, AsyncIterator
import json

from shared.clients.ClientInterface import ClientInterface
from shared.clients.rag.models.ScrollPage import ScrollPage
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import CollaboratorError

SCROLL_PAGE_SIZE = 1000


class RAGClientInterface(ClientInterface):
    """Vector index backend. One instance serves every collection of the deployment;
    each request names the collection it targets."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    @abstractmethod
    def get_collection_prefix(self) -> str:
        """
        Returns the prefix every collection name of this deployment starts with.
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_collection(self, collection: str) -> str:
        """Returns the endpoint path to create (PUT) or delete (DELETE) a collection."""
        pass

    @abstractmethod
    def _get_endpoint_check_collection_existence(self, collection: str) -> str:
        """Returns the endpoint path for collection existence check requests."""
        pass

    @abstractmethod
    def _get_endpoint_points(self, collection: str) -> str:
        """Returns the endpoint path for points upsert requests."""
        pass

    @abstractmethod
    def _get_endpoint_search(self, collection: str) -> str:
        """Returns the endpoint path for nearest-neighbour search requests."""
        pass

    @abstractmethod
    def _get_endpoint_scroll(self, collection: str) -> str:
        """Returns the endpoint path for scroll requests."""
        pass

    @abstractmethod
    def _get_endpoint_delete_points(self, collection: str) -> str:
        """Returns the endpoint path for deleting points by id or filter."""
        pass

    @abstractmethod
    def _get_endpoint_count(self, collection: str) -> str:
        """Returns the endpoint path for counting points."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        """
        Builds the backend-specific request payload for creating a collection.

        Args:
            vector_size (int): Dimension of the vectors stored in the collection.
            distance (str): Distance metric (e.g. "Cosine").

        Returns:
            dict: The payload for the create request.
        """
        pass

    @abstractmethod
    def get_search_payload(self, vector: list[float], limit: int) -> dict:
        """
        Builds the backend-specific request payload for a nearest-neighbour search.

        Args:
            vector (list[float]): The query vector.
            limit (int): Maximum number of hits.

        Returns:
            dict: The payload for the search request.
        """
        pass

    @abstractmethod
    def get_scroll_payload(self, limit: int, offset: str | int | None = None) -> dict:
        """
        Returns the payload for reading one page of points, payload included and vectors omitted.

        Args:
            limit (int): The maximum number of points on the page.
            offset (str | int | None): Cursor returned with the previous page, None for the first page.

        Returns:
            dict: The payload for the scroll request.
        """
        pass

    @abstractmethod
    def get_match_filter(self, field: str, value: str) -> dict:
        """Builds a filter matching points whose payload field equals value."""
        pass

    @abstractmethod
    def get_match_all_filter(self) -> dict:
        """Builds a filter matching every point of a collection."""
        pass

    @abstractmethod
    def get_count_payload(self, filter: dict) -> dict:
        """Builds the backend-specific request payload for an exact point count."""
        pass

    @abstractmethod
    def get_delete_payload(self, point_ids: list[str] | None = None, filter: dict | None = None) -> dict:
        """Builds the backend-specific request payload for deleting points by id or by filter."""
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def extract_search_hits(self, raw_response: dict) -> list[dict]:
        """
        Extracts the hits from a raw search response.

        Returns:
            list[dict]: Hits with keys "id", "score" and "payload". Higher score means more similar.
        """
        pass

    @abstractmethod
    def extract_scroll_page(self, raw_response: dict) -> ScrollPage:
        """
        Extracts the points and the cursor of the next page from a raw scroll response.

        Returns:
            ScrollPage: Points as dicts with keys "id" and "payload"; next_offset is None on the last page.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    def _raise_for_response(self, resp, action: str) -> None:
        self.logging.error("Failed to %s on %s: status %d: %s", action, self.get_engine_name(), resp.status_code, resp.text[:500])
        raise CollaboratorError(
            f"Failed to {action}: status {resp.status_code}",
            backend=self.get_engine_name(),
            backend_status=resp.status_code,
        )

    async def do_existence_check(self, collection: str) -> bool:
        """Check if a collection exists in the rag backend.

        Args:
            collection (str): The collection name.

        Returns:
            bool: True if the collection exists, False otherwise.
        """
        resp = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_check_collection_existence(collection),
            raise_on_error=True,
        )
        return bool(resp.json().get("result", {}).get("exists"))

    async def do_create_collection(self, collection: str, vector_size: int, distance: str = "Cosine") -> None:
        """Create a collection in the rag backend.

        A 409 answer (collection created concurrently by another process) counts as success.

        Args:
            collection (str): The collection name.
            vector_size (int): The size of the vectors in the collection.
            distance (str): The distance metric for the vectors.
        """
        resp = await self.do_request(
            method="PUT",
            json=self.get_create_collection_payload(vector_size, distance),
            endpoint=self._get_endpoint_collection(collection),
        )
        if resp.status_code == 409:
            self.logging.info("Collection %r already exists (created concurrently).", collection)
            return
        if resp.status_code >= 300:
            self._raise_for_response(resp, f"create collection {collection!r}")

    async def do_delete_collection(self, collection: str) -> None:
        """Delete a collection and all of its points. A missing collection is not an error.

        Args:
            collection (str): The collection name.
        """
        resp = await self.do_request(method="DELETE", endpoint=self._get_endpoint_collection(collection))
        if resp.status_code == 404:
            return
        if resp.status_code >= 300:
            self._raise_for_response(resp, f"delete collection {collection!r}")

    async def do_upsert_points(self, collection: str, points: list[dict[str, Any]]) -> None:
        """Upsert points into a collection and wait until they are searchable.

        Args:
            collection (str): The collection name.
            points (list[dict[str, Any]]): Points with keys "id", "vector", "payload".
        """
        await self.do_request(
            method="PUT",
            content=json.dumps({"points": points}),
            params={"wait": "true"},
            endpoint=self._get_endpoint_points(collection),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )

    async def do_search(self, collection: str, vector: list[float], limit: int) -> list[dict]:
        """Return the points nearest to the given vector, best match first.

        Args:
            collection (str): The collection name.
            vector (list[float]): The query vector.
            limit (int): Maximum number of hits.

        Returns:
            list[dict]: Hits with keys "id", "score", "payload".
        """
        resp = await self.do_request(
            method="POST",
            content=json.dumps(self.get_search_payload(vector, limit)),
            endpoint=self._get_endpoint_search(collection),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
        return self.extract_search_hits(resp.json())

    async def do_delete_points(self, collection: str, point_ids: list[str]) -> None:
        """Delete points by id.

        Args:
            collection (str): The collection name.
            point_ids (list[str]): Ids of the points to delete.
        """
        if not point_ids:
            return
        await self.do_request(
            method="POST",
            content=json.dumps(self.get_delete_payload(point_ids=point_ids)),
            params={"wait": "true"},
            endpoint=self._get_endpoint_delete_points(collection),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )

    async def do_delete_points_by_filter(self, collection: str, filter: dict) -> None:
        """Delete every point matching a filter; the collection itself stays in place.

        Args:
            collection (str): The collection name.
            filter (dict): A filter from get_match_filter() or get_match_all_filter().
        """
        await self.do_request(
            method="POST",
            content=json.dumps(self.get_delete_payload(filter=filter)),
            params={"wait": "true"},
            endpoint=self._get_endpoint_delete_points(collection),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )

    async def do_count(self, collection: str, filter: dict) -> int:
        """Return the exact number of points matching a filter."""
        resp = await self.do_request(
            method="POST",
            content=json.dumps(self.get_count_payload(filter)),
            endpoint=self._get_endpoint_count(collection),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
        return int((resp.json().get("result") or {}).get("count", 0))

    async def do_scroll(self, collection: str, limit: int = SCROLL_PAGE_SIZE, offset: str | int | None = None) -> ScrollPage:
        """Read a single page of points from a collection.

        Use iter_points() to read every page.

        Args:
            collection (str): The collection name.
            limit (int): Maximum number of points on the page.
            offset (str | int | None): Cursor from the previous page, None to start.

        Returns:
            ScrollPage: The page, with next_offset set when further pages are available.
        """
        resp = await self.do_request(
            method="POST",
            content=json.dumps(self.get_scroll_payload(limit, offset)),
            endpoint=self._get_endpoint_scroll(collection),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
        return self.extract_scroll_page(resp.json())

    async def iter_points(self, collection: str, page_size: int = SCROLL_PAGE_SIZE) -> AsyncIterator[dict]:
        """Yield every point of a collection, following the page cursor until the last page."""
        offset: str | int | None = None
        page = 1
        while True:
            scroll_page = await self.do_scroll(collection, limit=page_size, offset=offset)
            self.logging.debug(
                "Fetched page %d (%d points) from %s/%s",
                page, len(scroll_page.points), self.get_engine_name(), collection,
            )
            for point in scroll_page.points:
                yield point
            if scroll_page.next_offset is None:
                return
            offset = scroll_page.next_offset
            page += 1

