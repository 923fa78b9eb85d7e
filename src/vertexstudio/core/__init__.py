"""Core functionality for Vertex Studio.

This package holds everything that is not HTTP wiring:

1. **Configuration** (config.py):
   - Environment-based configuration using Pydantic Settings
   - Credential file resolution at startup

2. **Remote Generation Client** (vertex_client.py, responses.py, polling.py, auth.py):
   - Imagen generate/edit and Veo image-to-video calls
   - One-time decoding of remote JSON into explicit result types
   - Configurable polling policy for long-running operations
   - Bearer tokens from a Google credential file

3. **Local persistence** (artifact_store.py, ledger.py):
   - Artifact files named ``result-{id}[-{variant}].{ext}``
   - JSON prompt ledger keyed by generation id

4. **Errors** (errors.py):
   - Exception hierarchy carrying HTTP status codes
"""

from vertexstudio.core.artifact_store import ArtifactGroup, ArtifactStore
from vertexstudio.core.config import StudioConfig, config
from vertexstudio.core.ledger import GenerationRecord, MetadataLedger
from vertexstudio.core.polling import PollPolicy
from vertexstudio.core.vertex_client import VertexClient

__all__ = [
    "ArtifactGroup",
    "ArtifactStore",
    "GenerationRecord",
    "MetadataLedger",
    "PollPolicy",
    "StudioConfig",
    "VertexClient",
    "config",
]
