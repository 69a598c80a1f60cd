"""Construction and lifecycle of the service's long-lived collaborators."""

from dataclasses import dataclass

from codechat.clients.anthropic import AnthropicClient, AnthropicConfig
from codechat.config import Settings
from codechat.services.blobs import BlobStore, InMemoryBlobStore
from codechat.services.chat import ChatOrchestrator
from codechat.services.gate import RequestGate
from codechat.services.generation import StructuredGenerator
from codechat.services.session_manager import InMemorySessionManager
from codechat.services.transcripts import InMemoryTranscriptStore, TranscriptStore
from codechat.tools.registry import ToolsRegistry
from codechat.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Everything a request handler needs, built once per process."""

    settings: Settings
    client: AnthropicClient
    session_manager: InMemorySessionManager
    gate: RequestGate
    store: TranscriptStore
    blob_store: BlobStore
    registry: ToolsRegistry
    orchestrator: ChatOrchestrator

    async def aclose(self) -> None:
        """Let running turns finish, then release clients."""
        await self.orchestrator.drain()
        await self.store.close()
        await self.client.close()
        logger.info("Service container closed")


def build_container(
    settings: Settings,
    client: AnthropicClient | None = None,
    store: TranscriptStore | None = None,
) -> ServiceContainer:
    """Wire the service graph from settings.

    Args:
        settings: Service settings
        client: Anthropic client to use instead of building one
        store: Transcript store to use instead of the in-memory default
    """
    client = client or AnthropicClient(
        api_key=settings.anthropic_api_key,
        config=AnthropicConfig(
            model=settings.chat_model,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
        ),
    )
    store = store or InMemoryTranscriptStore()
    session_manager = InMemorySessionManager(session_timeout_minutes=settings.session_timeout_minutes)

    generator = StructuredGenerator(
        client,
        model=settings.structured_model,
        max_attempts=settings.structured_max_attempts,
    )
    registry = ToolsRegistry(generator)

    orchestrator = ChatOrchestrator(
        client=client,
        registry=registry,
        store=store,
        system_prompt=settings.system_prompt,
        max_steps=settings.max_steps,
        public_base_url=settings.public_base_url,
    )

    logger.info(f"Service container built with tools: {registry.get_tool_names()}")
    return ServiceContainer(
        settings=settings,
        client=client,
        session_manager=session_manager,
        gate=RequestGate(session_manager),
        store=store,
        blob_store=InMemoryBlobStore(public_base_url=settings.public_base_url),
        registry=registry,
        orchestrator=orchestrator,
    )
