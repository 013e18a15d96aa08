import asyncio
import random
import shutil
from typing import Callable

from services.isolation.SessionRegistry import SessionRegistry
from services.vectorstore.VectorStoreManager import VectorStoreManager
from shared.helper.HelperConfig import HelperConfig
from shared.helper.isolation_paths import get_isolated_path, mask_key


class SessionJanitor:
    """Purges the data of expired sessions.

    Two independent triggers run the same sweep:
    - a periodic background task (every SESSION_SWEEP_INTERVAL_SECONDS, plus once at start),
    - an opportunistic per-request check with a small fixed probability.

    Neither gives sub-interval precision, only eventual cleanup. Sweeps never
    overlap; a trigger that fires while one is running is skipped.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        registry: SessionRegistry,
        store_manager: VectorStoreManager,
        upload_root: str,
        interval_seconds: float = 3600,
        probability: float = 0.01,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._registry = registry
        self._store_manager = store_manager
        self._upload_root = upload_root
        self._interval_seconds = interval_seconds
        self._probability = probability
        self._rng = rng

        self._periodic_task: asyncio.Task | None = None
        self._sweep_task: asyncio.Task | None = None

    ##########################################
    ################# SWEEP ##################
    ##########################################

    async def run_sweep(self) -> list[str]:
        """Expire sessions and remove their vector stores and uploads.

        A failure while purging one key is logged and does not stop the others.
        A key tracked again while earlier keys were being purged is live and keeps
        its data.

        Returns:
            list[str]: The expired session keys.
        """
        expired = await self._registry.sweep()
        for key in expired:
            if key in self._registry:
                self.logging.info("Session %s became active again, keeping its data.", mask_key(key))
                continue
            try:
                await self._store_manager.drop_store(key)
            except Exception as exc:
                self.logging.error("Failed to drop vector store of expired session %s: %s", mask_key(key), exc)
            if key in self._registry:
                continue
            upload_dir = get_isolated_path(self._upload_root, key)
            try:
                await asyncio.to_thread(shutil.rmtree, upload_dir, True)
            except OSError as exc:
                self.logging.error("Failed to remove uploads of expired session %s: %s", mask_key(key), exc)
        return expired

    def is_sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def maybe_sweep(self) -> bool:
        """Start a sweep in the background with the configured probability.

        Returns:
            bool: True if a sweep was started.
        """
        if self._probability <= 0 or self.is_sweeping():
            return False
        if self._rng() >= self._probability:
            return False
        self._sweep_task = asyncio.create_task(self._guarded_sweep())
        return True

    async def _guarded_sweep(self) -> None:
        try:
            await self.run_sweep()
        except Exception as exc:
            self.logging.error("Session sweep failed: %s", exc)

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def _periodic_loop(self) -> None:
        while True:
            if not self.is_sweeping():
                self._sweep_task = asyncio.create_task(self._guarded_sweep())
            await asyncio.shield(self._sweep_task)
            await asyncio.sleep(self._interval_seconds)

    def start(self) -> None:
        if self._periodic_task is not None:
            return
        self._periodic_task = asyncio.create_task(self._periodic_loop())
        self.logging.info("Session sweep scheduled every %ss.", self._interval_seconds)

    async def stop(self) -> None:
        for task in (self._periodic_task, self._sweep_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._periodic_task = None
        self._sweep_task = None
