"""Publishes processing state and streamed text over pypubsub."""

import logging
from pubsub import pub

from ..models.processing import RecordProcessingState
from ..models.transcription import TranscriptionUpdate

logger = logging.getLogger(__name__)

STATE_TOPIC = "processing.state"
STREAM_TOPIC = "transcription.stream"


class ProcessingStatePublisher:
    """Publishes record state snapshots and streaming updates to pub/sub topics."""

    def __init__(self, state_topic: str = STATE_TOPIC, stream_topic: str = STREAM_TOPIC):
        """Initialize publisher.

        Args:
            state_topic: Topic receiving ``record_id`` and ``state``
            stream_topic: Topic receiving ``record_id`` and ``update``
        """
        self.state_topic = state_topic
        self.stream_topic = stream_topic
        logger.info(f"ProcessingStatePublisher initialized with topics: {state_topic}, {stream_topic}")

    def publish_state(self, record_id: str, state: RecordProcessingState) -> None:
        """Publish a copy of a record's processing state.

        Listener errors are logged so they cannot break the job that
        triggered the change.
        """
        try:
            pub.sendMessage(self.state_topic, record_id=record_id, state=state)
        except Exception as e:
            logger.error(f"Error in state listener for {record_id}: {e}")

    def publish_stream_update(self, record_id: str, update: TranscriptionUpdate) -> None:
        try:
            pub.sendMessage(self.stream_topic, record_id=record_id, update=update)
        except Exception as e:
            logger.error(f"Error in stream listener for {record_id}: {e}")
