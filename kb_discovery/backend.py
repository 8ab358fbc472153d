# kb_discovery/backend.py

import logging
from typing import Optional

from kb_discovery import settings
from kb_discovery.discovery_results import DiscoveryResultRepository
from kb_discovery.entities import mint_id
from kb_discovery.generation import GenerationOrchestrator
from kb_discovery.kb_client import KnowledgeBaseClient
from kb_discovery.record_store import RecordStore
from kb_discovery.repositories import (
    CategoryMappingRepository,
    ProductRepository,
    PromptRepository,
    QuestionRepository,
    UserRepository,
)

logger = logging.getLogger("kb_discovery")


class Backend:
    """
    Owns the record store and everything built on it. One instance per process,
    created at start-up and handed to the HTTP layer.
    """

    def __init__(
        self,
        data_dir: Optional[str] = None,
        kb_client: Optional[KnowledgeBaseClient] = None,
    ):
        self.store = RecordStore(data_dir or settings.DATA_DIR)

        self.users = UserRepository(self.store)
        self.mappings = CategoryMappingRepository(self.store)
        self.questions = QuestionRepository(self.store)
        self.products = ProductRepository(self.store, self.questions)
        self.prompts = PromptRepository(self.store)
        self.results = DiscoveryResultRepository(self.store)

        self.kb_client = kb_client or KnowledgeBaseClient(
            settings.ANYTHINGLLM_BASE_URL,
            settings.ANYTHINGLLM_API_KEY,
            timeout=settings.ANYTHINGLLM_TIMEOUT,
        )
        self.orchestrator = GenerationOrchestrator(self.kb_client, self.mappings, self.prompts)

    def bootstrap(self) -> None:
        """
        Creates the default admin account and the default prompt templates when missing.
        """
        username = settings.DEFAULT_ADMIN_USERNAME
        if self.users.find_by_username(username) is None:
            self.users.create_user(
                username,
                settings.DEFAULT_ADMIN_PASSWORD,
                role="admin",
                user_id=mint_id("admin").rsplit("-", 1)[0],
            )
            logger.info(f"Default admin user created: {username}")
        self.prompts.ensure_defaults()
        logger.info(f"[DB] JSON collections in {self.store.data_dir}")
