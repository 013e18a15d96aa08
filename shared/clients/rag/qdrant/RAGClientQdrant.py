from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.ScrollPage import ScrollPage
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class RAGClientQdrant(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._collection_prefix = self.get_config_val("COLLECTION", default="bento", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    def get_collection_prefix(self) -> str:
        return self._collection_prefix

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default="bento"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"api-key": f"{self._api_key}"}
        else:
            return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    def _get_endpoint_collection(self, collection: str) -> str:
        return f"/collections/{collection}"

    def _get_endpoint_check_collection_existence(self, collection: str) -> str:
        return f"/collections/{collection}/exists"

    def _get_endpoint_points(self, collection: str) -> str:
        return f"/collections/{collection}/points"

    def _get_endpoint_search(self, collection: str) -> str:
        return f"/collections/{collection}/points/search"

    def _get_endpoint_scroll(self, collection: str) -> str:
        return f"/collections/{collection}/points/scroll"

    def _get_endpoint_delete_points(self, collection: str) -> str:
        return f"/collections/{collection}/points/delete"

    def _get_endpoint_count(self, collection: str) -> str:
        return f"/collections/{collection}/points/count"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        return {"vectors": {"size": vector_size, "distance": distance}}

    def get_search_payload(self, vector: list[float], limit: int) -> dict:
        return {"vector": vector, "limit": limit, "with_payload": True, "with_vector": False}

    def get_scroll_payload(self, limit: int, offset: str | int | None = None) -> dict:
        payload = {"limit": limit, "with_payload": True, "with_vector": False}
        if offset is not None:
            payload["offset"] = offset
        return payload

    def get_match_filter(self, field: str, value: str) -> dict:
        return {"must": [{"key": field, "match": {"value": value}}]}

    def get_match_all_filter(self) -> dict:
        # a filter without conditions matches every point
        return {"must": []}

    def get_count_payload(self, filter: dict) -> dict:
        return {"filter": filter, "exact": True}

    def get_delete_payload(self, point_ids: list[str] | None = None, filter: dict | None = None) -> dict:
        if point_ids is not None:
            return {"points": point_ids}
        return {"filter": filter if filter is not None else self.get_match_all_filter()}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_search_hits(self, raw_response: dict) -> list[dict]:
        # with Cosine distance Qdrant reports cosine similarity, higher is closer
        hits = raw_response.get("result") or []
        return [
            {"id": hit.get("id"), "score": float(hit.get("score", 0.0)), "payload": hit.get("payload") or {}}
            for hit in hits
        ]

    def extract_scroll_page(self, raw_response: dict) -> ScrollPage:
        result = raw_response.get("result") or {}
        return ScrollPage(points=result.get("points") or [], next_offset=result.get("next_page_offset"))
