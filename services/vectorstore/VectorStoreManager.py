import asyncio
from typing import Callable

from services.isolation.IsolationResolver import IsolationMode
from services.vectorstore.VectorStore import VectorStore
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.isolation_paths import ISOLATED_SEGMENT, SHARED_SEGMENT, get_storage_segment, mask_key

StoreFactory = Callable[[str, str], VectorStore]


class VectorStoreManager:
    """Owns the per-isolation-key vector stores of the process.

    Stores are created lazily on first access and cached until cleared or
    dropped. Lookup-or-create runs under a per-store-key asyncio.Lock, so
    concurrent first accesses for the same key construct exactly one store.
    A store whose initialization failed is never cached; the next access
    tries again.

    Store keys are "shared" and "isolated:{key}"; the backing collections are
    "{prefix}__shared" and "{prefix}__isolated__{segment}".
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        rag_client: RAGClientInterface,
        vector_size: int,
        distance: str = "Cosine",
        isolation_mode: IsolationMode | str = IsolationMode.NONE,
        store_factory: StoreFactory | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self._rag_client = rag_client
        self._vector_size = vector_size
        self._distance = distance
        self._isolation_mode = IsolationMode(isolation_mode)
        self._store_factory = store_factory or self._create_store

        self._stores: dict[str, VectorStore] = {}
        # one lock per store key, kept for the lifetime of the process
        self._locks: dict[str, asyncio.Lock] = {}

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_store_key(self, isolation_key: str | None) -> str:
        """Return "shared" for an empty key or mode none, otherwise "isolated:{key}"."""
        if not isolation_key or self._isolation_mode == IsolationMode.NONE:
            return SHARED_SEGMENT
        return f"{ISOLATED_SEGMENT}:{isolation_key}"

    def get_collection_name(self, isolation_key: str | None) -> str:
        prefix = self._rag_client.get_collection_prefix()
        if self.get_store_key(isolation_key) == SHARED_SEGMENT:
            return f"{prefix}__{SHARED_SEGMENT}"
        return f"{prefix}__{ISOLATED_SEGMENT}__{get_storage_segment(isolation_key)}"

    def get_cached_store_keys(self) -> list[str]:
        return list(self._stores.keys())

    def _get_lock(self, store_key: str) -> asyncio.Lock:
        lock = self._locks.get(store_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[store_key] = lock
        return lock

    def _create_store(self, store_key: str, collection: str) -> VectorStore:
        return VectorStore(
            helper_config=self._helper_config,
            rag_client=self._rag_client,
            store_key=store_key,
            collection=collection,
            vector_size=self._vector_size,
            distance=self._distance,
        )

    ##########################################
    ################# CORE ###################
    ##########################################

    async def get_store(self, isolation_key: str | None) -> VectorStore:
        """Return the store of an isolation key, creating it on first access.

        Args:
            isolation_key (str | None): The caller's isolation key, None for the shared store.

        Returns:
            VectorStore: The one live store handle for that key.

        Raises:
            StoreInitializationError: If a new store cannot be initialized.
        """
        store_key = self.get_store_key(isolation_key)
        store = self._stores.get(store_key)
        if store is not None:
            return store

        async with self._get_lock(store_key):
            store = self._stores.get(store_key)
            if store is None:
                store = self._store_factory(store_key, self.get_collection_name(isolation_key))
                await store.initialize()
                self._stores[store_key] = store
                self.logging.debug("Vector store for %s ready.", mask_key(isolation_key))
        return store

    async def clear_store(self, isolation_key: str | None) -> None:
        """Delete every chunk of a tenant and evict its handle from the cache."""
        store = await self.get_store(isolation_key)
        store_key = store.store_key
        async with self._get_lock(store_key):
            try:
                await store.clear()
            finally:
                self._stores.pop(store_key, None)
        self.logging.info("Cleared vector store of %s.", mask_key(isolation_key))

    async def drop_store(self, isolation_key: str | None) -> None:
        """Destroy a tenant's store including its backing collection and evict the handle.

        Works whether or not the store is currently cached, so stores left
        behind by a previous process are removed too.
        """
        store_key = self.get_store_key(isolation_key)
        async with self._get_lock(store_key):
            store = self._stores.pop(store_key, None)
            if store is None:
                store = self._store_factory(store_key, self.get_collection_name(isolation_key))
            await store.destroy()
        self.logging.info("Dropped vector store of %s.", mask_key(isolation_key))
