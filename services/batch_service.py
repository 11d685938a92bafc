# =============================================================================
# services/batch_service.py - Graph JSON batching
# =============================================================================

import logging
from typing import List

from core.graph_client import GraphClient
from core.models import BatchRequest, BatchRequestItem, BatchResponse
from utils.config import MAX_BATCH_SIZE
from utils.retry import RetryOptions, retry_with_backoff


class BatchService:
    """Combines several GET calls into one /$batch round trip"""

    def __init__(self, client: GraphClient, retry_options: RetryOptions,
                 batch_size: int = MAX_BATCH_SIZE):
        self.client = client
        self.retry_options = retry_options
        self.batch_size = batch_size
        self.logger = logging.getLogger(self.__class__.__name__)

    def create_batch_request(self, urls: List[str]) -> BatchRequest:
        """Create a batch of GET requests with ids "1".."n" in url order"""
        if len(urls) > self.batch_size:
            raise ValueError(f"Batch of {len(urls)} requests exceeds the limit of {self.batch_size}")

        return BatchRequest(requests=[
            BatchRequestItem(id=str(index + 1), url=url)
            for index, url in enumerate(urls)
        ])

    async def execute_batch(self, batch_request: BatchRequest) -> BatchResponse:
        """Execute a batch with throttling retries; failures propagate to the caller"""
        payload = batch_request.to_payload()
        response = await retry_with_backoff(
            lambda: self.client.post("/$batch", payload),
            self.retry_options
        )
        batch_response = BatchResponse.from_graph(response)
        self.logger.debug(f"Batch of {len(batch_request.requests)} returned {len(batch_response.responses)} responses")
        return batch_response
