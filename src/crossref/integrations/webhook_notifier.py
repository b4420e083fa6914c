#!/usr/bin/env python3
"""
Webhook integration for completion notifications.

POSTs a JSON document to a listener URL. Non-2xx responses and transport
errors raise DeliveryError so the Task Runner retries the delivery.
"""

import logging
from typing import Any, Dict

import requests

from crossref.core.exceptions import DeliveryError

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """Sends JSON payloads to configured listeners."""

    def __init__(self, timeout: int = 10, user_agent: str = "NewsCrossRef/1.0"):
        """
        Args:
            timeout: Request timeout in seconds
            user_agent: User-Agent header sent with every delivery
        """
        self.timeout = timeout
        self.headers = {
            'Content-Type': 'application/json',
            'User-Agent': user_agent
        }

    def send(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deliver one payload.

        Args:
            url: Listener URL
            payload: JSON-serializable document

        Returns:
            Delivery receipt with URL and status code

        Raises:
            DeliveryError: On transport failure or a non-2xx response
        """
        try:
            response = requests.post(url, json=payload, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Error sending webhook to {url}: {e}")
            raise DeliveryError(url, original_error=e) from e

        if not 200 <= response.status_code < 300:
            logger.error(f"Webhook {url} responded with {response.status_code}: {response.text[:200]}")
            raise DeliveryError(url, status_code=response.status_code)

        logger.info(f"Delivered webhook to {url} ({response.status_code})")
        return {'url': url, 'status_code': response.status_code}
