#!/usr/bin/env python3
"""
OpenAI integration for story synthesis.

Turns a verified cluster's articles into one unified story using structured
JSON-schema outputs, and optionally generates a hero image.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI, OpenAIError

from crossref.core.models import RawArticle

logger = logging.getLogger(__name__)

STORY_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "body": {"type": "string"},
        "confidence": {"type": "number"}
    },
    "required": ["title", "body", "confidence"],
    "additionalProperties": False
}

SYSTEM_PROMPT = (
    "You are a news editor. Combine the supplied reports about one event into a single "
    "neutral article. Only state facts that appear in at least one report, and report "
    "your confidence between 0 and 1 that the reports describe the same event."
)

MAX_ARTICLE_CHARS = 1500


class OpenAIClient:
    """Client for OpenAI API integration with structured outputs."""

    def __init__(self, api_key: str, model: str = "gpt-4o", image_model: str = "dall-e-3", client: Optional[Any] = None):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key
            model: Chat model used for synthesis
            image_model: Image model used for hero images
            client: Pre-built OpenAI client (tests)
        """
        if not api_key and client is None:
            raise ValueError("OpenAI API key not provided")

        self.client = client or OpenAI(api_key=api_key)
        self.model = model
        self.image_model = image_model
        self.max_tokens = 2000
        self.temperature = 0.3

    def _make_structured_request(self, messages: List[Dict[str, str]], schema: Dict[str, Any],
                                 request_type: str) -> Dict[str, Any]:
        """Make a structured request and return the parsed JSON object."""
        logger.info(f"Making OpenAI structured API call for {request_type} ({len(messages)} messages)")

        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": f"{request_type}_response",
                    "schema": schema,
                    "strict": True
                }
            }
        )

        finish_reason = getattr(response.choices[0], "finish_reason", None)
        if finish_reason == "length":
            raise ValueError("OpenAI response truncated (finish_reason=length)")

        usage = getattr(response, 'usage', None)
        if usage is not None:
            logger.info(f"OpenAI API call successful - tokens: {usage.total_tokens} total")

        return json.loads(response.choices[0].message.content)

    def synthesize_story(self, topic: str, articles: List[RawArticle],
                         source_names: Dict[str, str]) -> Dict[str, Any]:
        """
        Produce a unified story from corroborating articles.

        Args:
            topic: Cluster topic label
            articles: Member and matched articles
            source_names: source_id -> display name

        Returns:
            Dict with title, body and confidence (clamped to 0..1)
        """
        reports = []
        for index, article in enumerate(articles, 1):
            text = (article.content or article.description)[:MAX_ARTICLE_CHARS]
            reports.append(
                f"Report {index} ({source_names.get(article.source_id, article.source_id)}):\n"
                f"{article.title}\n{text}"
            )

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": f"Topic: {topic}\n\n" + "\n\n".join(reports)}
        ]
        result = self._make_structured_request(messages, STORY_SCHEMA, "story_synthesis")
        result['confidence'] = max(0.0, min(1.0, float(result.get('confidence', 0.0))))
        return result

    def generate_image(self, prompt: str) -> Optional[str]:
        """Generate a hero image and return its URL."""
        logger.info(f"Requesting hero image from {self.image_model}")
        response = self.client.images.generate(model=self.image_model, prompt=prompt[:1000], n=1, size="1024x1024")
        if not response.data:
            return None
        return response.data[0].url


__all__ = ['OpenAIClient', 'OpenAIError', 'STORY_SCHEMA']
