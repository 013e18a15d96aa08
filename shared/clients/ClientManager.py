import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class ClientManager:
    """
    Instantiates the backend client selected by <TYPE>_ENGINE.

    Engine implementations live at shared/clients/<type>/<engine>/<Prefix><Engine>.py,
    e.g. RAG_ENGINE=qdrant loads RAGClientQdrant from shared/clients/rag/qdrant/RAGClientQdrant.py.
    Subclasses only name their client type, class prefix and default engine.
    """

    client_type: str = ""
    class_prefix: str = ""
    default_engine: str | None = None

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()
        if transport is not None:
            self.client.set_transport(transport)

    def _get_engine_from_env(self) -> str:
        """
        Reads the engine name from ENV configuration.

        Returns:
            str: Capitalised engine name (e.g. "Ollama").

        Raises:
            ValueError: If no engine is configured and there is no default.
        """
        env_key = f"{self.client_type.upper()}_ENGINE"
        engine = self.helper_config.get_string_val(env_key, default=self.default_engine)
        if not engine or not engine.strip():
            raise ValueError(f"No {self.client_type.upper()} engine specified in configuration ({env_key}).")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> ClientInterface:
        engine = self._get_engine_from_env()
        class_name = f"{self.class_prefix}{engine}"
        module_path = f"shared.clients.{self.client_type}.{engine.lower()}.{class_name}"
        try:
            module = __import__(module_path, fromlist=[class_name])
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported {self.client_type.upper()} engine specified: '{engine}'. Error: {e}")
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated %s client for engine: %s", self.client_type.upper(), engine)
        return client

    def get_client(self) -> ClientInterface:
        return self.client
