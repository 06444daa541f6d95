"""FastAPI dependency providers for the orchestration services.

Tests swap the upstream collaborators through ``app.dependency_overrides``.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ..core.config import settings
from ..database import get_db
from ..services import EditOrchestrator, OrchestratorConfig, VersionGraph
from ..services.blob_store import BlobStore, CloudflareImagesStore
from ..services.generation_client import GeminiImageClient, GenerationOracle


def get_orchestrator_config() -> OrchestratorConfig:
    return OrchestratorConfig.from_settings(settings)


def get_oracle() -> GenerationOracle:
    return GeminiImageClient.from_settings(settings)


def get_blob_store() -> BlobStore:
    return CloudflareImagesStore.from_settings(settings)


def get_orchestrator(
    db: Session = Depends(get_db),
    oracle: GenerationOracle = Depends(get_oracle),
    blob_store: BlobStore = Depends(get_blob_store),
    config: OrchestratorConfig = Depends(get_orchestrator_config),
) -> EditOrchestrator:
    return EditOrchestrator(db, oracle=oracle, blob_store=blob_store, config=config)


def get_version_graph(
    db: Session = Depends(get_db),
    config: OrchestratorConfig = Depends(get_orchestrator_config),
) -> VersionGraph:
    return VersionGraph(db, config.id_factory, config.clock)
