from abc import abstractmethod
from typing import AsyncIterator, Tuple

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import ChatMessage
from shared.models.errors import CollaboratorError


class LLMClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # chat / completion config
        self.chat_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_CHAT_MODEL", default=self._get_default_chat_model())
        self.temperature = float(helper_config.get_number_val(f"{self.get_client_type().upper()}_TEMPERATURE", default=0.7))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "llm"

    @abstractmethod
    def _get_default_chat_model(self) -> str | None:
        """Returns the model used when LLM_CHAT_MODEL is not set, or None if it is required."""
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_models(self) -> str:
        """Returns the endpoint path for model listing requests (e.g. "/api/tags")."""
        pass

    @abstractmethod
    def _get_endpoint_chat(self) -> str:
        """Returns the endpoint path for chat/completion requests (e.g. "/api/chat")."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_chat_payload(self, messages: list[dict], model: str, stream: bool) -> dict:
        """Build the backend-specific request body for a chat/completion request.

        Args:
            messages (list[dict]): OpenAI-format messages
                (e.g. [{"role": "user", "content": "..."}]).
            model (str): The model to answer with.
            stream (bool): Whether the backend should stream the answer.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_chat_response(self, response_data: dict) -> str:
        """Extract the assistant reply text from a raw, non-streamed chat API response.

        Raises:
            ValueError: If the response does not contain a valid reply.
        """
        pass

    @abstractmethod
    def extract_stream_token(self, line: str) -> Tuple[str | None, bool]:
        """Parse one line of a streamed chat response.

        Args:
            line (str): One line of the response body.

        Returns:
            Tuple[str | None, bool]: The token carried by the line (None for keep-alives,
                role headers and other lines without text) and whether the stream is finished.

        Raises:
            ValueError: If the line reports a backend error.
        """
        pass

    @abstractmethod
    def extract_models(self, response_data: dict) -> list[dict]:
        """Extract the model catalog from a raw model listing response."""
        pass

    @abstractmethod
    def get_fallback_models(self) -> list[dict]:
        """Model list served when the backend catalog cannot be fetched."""
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_models(self) -> list[dict]:
        """Fetch the list of available models from the backend.

        Falls back to get_fallback_models() if the catalog request fails.

        Returns:
            list[dict]: Model descriptors, each with at least "id" and "name".
        """
        try:
            response = await self.do_request(method="GET", endpoint=self._get_endpoint_models(), raise_on_error=True)
            return self.extract_models(response.json())
        except (CollaboratorError, ValueError) as exc:
            self.logging.warning("Fetching the model catalog from %s failed: %s. Serving fallback list.", self.get_engine_name(), exc)
            return self.get_fallback_models()

    def _dump_messages(self, messages: list[ChatMessage]) -> list[dict]:
        return [message.model_dump() for message in messages]

    async def do_chat(self, messages: list[ChatMessage], model: str | None = None) -> str:
        """Send a chat/completion request and return the complete assistant reply.

        Raises:
            CollaboratorError: If the request fails or the response holds no reply.
        """
        body = self.get_chat_payload(self._dump_messages(messages), model or self.chat_model, stream=False)
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_chat(),
            json=body,
            raise_on_error=True,
        )
        try:
            return self.extract_chat_response(response.json())
        except ValueError as exc:
            raise CollaboratorError(str(exc), backend=self.get_engine_name()) from exc

    async def do_chat_stream(self, messages: list[ChatMessage], model: str | None = None) -> AsyncIterator[str]:
        """Stream the assistant reply token by token.

        The upstream connection lives exactly as long as this generator: closing
        the generator (e.g. via contextlib.aclosing when the downstream client
        disconnects) closes the HTTP stream.

        Yields:
            str: Non-empty text fragments in arrival order.

        Raises:
            CollaboratorError: If the request fails or the backend reports an error mid-stream.
        """
        body = self.get_chat_payload(self._dump_messages(messages), model or self.chat_model, stream=True)
        async with self.do_stream_request(method="POST", json=body, endpoint=self._get_endpoint_chat()) as response:
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                try:
                    token, done = self.extract_stream_token(line)
                except ValueError as exc:
                    self.logging.error("%s stream reported an error: %s", self.get_engine_name(), exc)
                    raise CollaboratorError(str(exc), backend=self.get_engine_name()) from exc
                if token:
                    yield token
                if done:
                    break
