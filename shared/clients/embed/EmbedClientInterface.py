from abc import abstractmethod

from typing import Tuple
from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import CollaboratorError


class EmbedClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # model and embedding config
        self.embed_distance = helper_config.get_string_val(f"{self.get_client_type().upper()}_DISTANCE", default="Cosine")
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL", default=self._get_default_model())
        self.embed_vector_size = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_VECTOR_SIZE", default=0))
        self.embed_batch_size = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_BATCH_SIZE", default=64, min_val=1))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "embed"
        """
        return "embed"

    @abstractmethod
    def _get_default_model(self) -> str | None:
        """
        Returns the model used when EMBED_MODEL is not set, or None if the variable is required.
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests.

        Returns:
            str: The endpoint path for embedding requests (e.g. "/api/embed")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": [...]}).
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Response format differs by backend:
        - Ollama /api/embed: {"embeddings": [[...], [...]]}, already ordered
        - OpenAI-compatible: {"data": [{"embedding": [...], "index": 0}]}, needs sorting

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            ValueError: If the response format is invalid or embeddings are empty.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_embedding_vector_size(self) -> Tuple[int, str]:
        """
        Return the output vector dimension and distance metric of the configured embedding model.

        EMBED_VECTOR_SIZE wins when set; otherwise the backend is asked once.

        Returns:
            Tuple[int, str]: The number of dimensions produced by the embedding model and the distance metric.
        """
        if self.embed_vector_size > 0:
            return self.embed_vector_size, self.embed_distance
        vector_size = await self._discover_vector_size()
        self.logging.info("Embedding model %r produces %d-dimensional vectors.", self.embed_model, vector_size)
        self.embed_vector_size = vector_size
        return vector_size, self.embed_distance

    async def _discover_vector_size(self) -> int:
        """Embed a probe text and measure the vector. Engines with a model-details endpoint override this."""
        vectors = await self.do_embed("dimension probe")
        return len(vectors[0])

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Send embedding requests and return the extracted vectors.

        Normalises the input to a list and sends it in batches of EMBED_BATCH_SIZE;
        the returned vectors keep the input order.

        Args:
            texts (list[str] | str): One or more texts to embed.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs.

        Raises:
            CollaboratorError: If a request fails or the backend returns an unusable response.
        """
        texts = [texts] if isinstance(texts, str) else texts
        vectors: list[list[float]] = []
        for batch_start in range(0, len(texts), self.embed_batch_size):
            batch = texts[batch_start: batch_start + self.embed_batch_size]
            vectors.extend(await self._do_embed_batch(batch))
        return vectors

    async def _do_embed_batch(self, texts: list[str]) -> list[list[float]]:
        body = self.get_embed_payload(texts)
        response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=body)
        if response.status_code != 200:
            self.logging.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise CollaboratorError(
                "Embedding request failed with status %d." % response.status_code,
                backend=self.get_engine_name(),
                backend_status=response.status_code,
            )
        try:
            embeddings = self.extract_embeddings_from_response(response.json())
        except ValueError as exc:
            raise CollaboratorError(str(exc), backend=self.get_engine_name()) from exc
        if len(embeddings) != len(texts):
            raise CollaboratorError(
                f"Embedding backend returned {len(embeddings)} vectors for {len(texts)} texts.",
                backend=self.get_engine_name(),
            )
        return embeddings
