"""Services layer for Recap application logic."""

from .processing_manager import RecordProcessingManager
from .state_publisher import ProcessingStatePublisher
from .model_service import ModelService

__all__ = [
    "RecordProcessingManager",
    "ProcessingStatePublisher",
    "ModelService",
]
