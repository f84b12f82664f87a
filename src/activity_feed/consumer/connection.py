"""SQS client for the consumer."""

from __future__ import annotations

from ..aws import AioClientManager
from ..exceptions import MessagingConnectionError


class SQSConnectionManager(AioClientManager):
    """Shared SQS client; creation failures raise MessagingConnectionError."""

    service_name = "sqs"
    error = MessagingConnectionError
